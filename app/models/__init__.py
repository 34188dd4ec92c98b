from app.models.user import User
from app.models.web_session import WebSession
from app.models.telegram_link import TelegramLink
from app.models.expense import Expense
from app.models.ai_usage import AIUsage

__all__ = ["User", "WebSession", "TelegramLink", "Expense", "AIUsage"]
