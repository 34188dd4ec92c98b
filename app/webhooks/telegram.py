"""
Telegram bot webhook — POST /integrations/telegram/webhook.

Pipeline for every incoming update:
1. Bot token / webhook secret not configured → 500 (Telegram retries later)
2. Verify X-Telegram-Bot-Api-Secret-Token → log and ack on mismatch
3. Parse Update object
4. /start link_<token> → confirm the link; anything else from an unlinked
   sender → "not connected" reply
5. Return 200 {"ok": true}

Business failures never surface as non-200: Telegram would only retry them.
"""
import hmac
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from telegram import Update

from app.config import settings
from app.database import get_db
from app.dependencies import get_linker, get_messenger
from app.services.links import LinkStore, TelegramLinker, extract_link_token
from app.services.telegram import (
    MSG_LINK_CONFIRMED,
    MSG_LINK_INVALID,
    MSG_NOT_CONNECTED,
    TelegramMessenger,
)
from app.utils.responses import respond_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telegram"])

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def verify_secret(request: Request, expected_secret: str) -> bool:
    token = request.headers.get(SECRET_HEADER, "")
    return hmac.compare_digest(token.encode(), expected_secret.encode())


async def handle_update(
    update: Update,
    db: AsyncSession,
    linker: TelegramLinker,
    messenger: TelegramMessenger | None,
) -> None:
    message = update.effective_message
    sender = update.effective_user
    if message is None or sender is None:
        return

    chat_id = message.chat_id
    text = (message.text or "").strip()

    async def reply(body: str) -> None:
        if messenger is not None:
            await messenger.send_message(chat_id, body)

    if text.startswith("/start"):
        token = extract_link_token(text)
        if token:
            result = await linker.confirm_link(token, sender.id)
            await db.commit()
            if not result.ok:
                logger.info(
                    f"[telegram] link rejected telegram_id={sender.id} outcome={result.outcome.value}"
                )
            await reply(MSG_LINK_CONFIRMED if result.ok else MSG_LINK_INVALID)
            return

    link = await LinkStore(db).find_confirmed_by_telegram(sender.id)
    if link is None:
        await reply(MSG_NOT_CONNECTED)


@router.post("/integrations/telegram/webhook")
async def telegram_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    linker: TelegramLinker = Depends(get_linker),
    messenger: TelegramMessenger | None = Depends(get_messenger),
):
    # 1. Configuration
    if not (settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_WEBHOOK_SECRET):
        logger.error("[telegram] webhook called but bot token / webhook secret not configured")
        return respond_error(
            request,
            status=500,
            code="TELEGRAM_WEBHOOK_NOT_CONFIGURED",
            message="Telegram webhook is not configured",
        )

    # 2. Verify secret
    if not verify_secret(request, settings.TELEGRAM_WEBHOOK_SECRET):
        logger.warning(
            f"[telegram] webhook secret mismatch from {request.client.host if request.client else '?'}"
        )
        return {"ok": True}

    # 3-4. Parse and handle
    try:
        data = await request.json()
        update = Update.de_json(data, messenger.bot if messenger else None)
        if update is not None:
            await handle_update(update, db, linker, messenger)
    except Exception as e:
        logger.exception(f"[telegram] error handling update: {e}")
        # Ack anyway: a retry would hit the same error
        await db.rollback()

    return {"ok": True}
