"""
Telegram integration API (session required).

POST /integrations/telegram/start-link — issue a deep link for the bot
GET  /integrations/telegram/status     — is a Telegram chat linked?
POST /integrations/telegram/confirm    — retired code-pairing flow (410)

The bot side of linking lives in app.webhooks.telegram.
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_linker, require_user
from app.exceptions import GoneError
from app.models.user import User
from app.services.links import TelegramLinker
from app.utils.responses import respond_success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/telegram", tags=["telegram"])


@router.post("/start-link")
async def start_link(
    request: Request,
    user: User = Depends(require_user),
    linker: TelegramLinker = Depends(get_linker),
    db: AsyncSession = Depends(get_db),
):
    started = await linker.start_link(user.id)
    await db.commit()
    return respond_success(
        request,
        code="TELEGRAM_START_LINK_SUCCESS",
        message="Open the link in Telegram to connect your account",
        data={"url": started.url},
        authenticated=True,
    )


@router.get("/status")
async def link_status(
    request: Request,
    user: User = Depends(require_user),
    linker: TelegramLinker = Depends(get_linker),
):
    connected = await linker.link_status(user.id)
    return respond_success(
        request,
        code="TELEGRAM_STATUS_SUCCESS",
        message="Telegram link status",
        data={"connected": connected},
        authenticated=True,
    )


@router.post("/confirm")
async def confirm_code(user: User = Depends(require_user)):
    raise GoneError(
        "Code confirmation was replaced by the bot deep link; use start-link instead",
        code="TELEGRAM_CONFIRM_DEPRECATED",
    )
