"""
Register the Telegram webhook for the expense tracker bot.
Run once after deploying:

    python -m scripts.set_webhook
"""
import asyncio
import sys

from telegram import Bot
from telegram.error import TelegramError

from app.config import settings

WEBHOOK_PATH = "/integrations/telegram/webhook"
ALLOWED_UPDATES = ["message", "callback_query"]


async def set_webhook() -> int:
    if not settings.telegram_webhook_configured:
        print("ERROR: TELEGRAM_BOT_TOKEN and TELEGRAM_WEBHOOK_SECRET must be set")
        return 1

    base_url = settings.BACKEND_ORIGIN.rstrip("/")
    webhook_url = f"{base_url}{WEBHOOK_PATH}"
    bot = Bot(token=settings.TELEGRAM_BOT_TOKEN)

    try:
        async with bot:
            result = await bot.set_webhook(
                url=webhook_url,
                secret_token=settings.TELEGRAM_WEBHOOK_SECRET,
                allowed_updates=ALLOWED_UPDATES,
                drop_pending_updates=True,
            )
            info = await bot.get_webhook_info()
    except TelegramError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"URL: {webhook_url}")
    print(f"Result: {result}")
    print(f"Pending updates: {info.pending_update_count}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(set_webhook()))
