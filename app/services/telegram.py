"""
Telegram messaging client — best-effort outbound messages to a chat.

Delivery failures are logged and swallowed: the webhook must acknowledge
Telegram regardless of whether our reply went through.
"""
import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)

MSG_LINK_INVALID = "⚠️ This link is invalid or has expired. Please request a new one from the web app."
MSG_LINK_CONFIRMED = (
    "✅ Telegram account successfully connected.\n"
    "You can now send receipt photos to record expenses."
)
MSG_NOT_CONNECTED = (
    "❌ Telegram is not connected.\n"
    "Please connect your account from the web app."
)


class TelegramMessenger:
    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def send_message(self, chat_id: int, text: str) -> bool:
        try:
            await self.bot.send_message(chat_id=chat_id, text=text)
            return True
        except TelegramError as e:
            logger.error(f"[telegram] sendMessage to chat {chat_id} failed: {e}")
            return False
