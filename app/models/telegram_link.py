"""
TelegramLink — lifecycle of binding one Telegram identity to one account.

pending:   telegram_id NULL, confirmed FALSE, expires_at set
confirmed: telegram_id set by the webhook, confirmed TRUE, expires_at NULL

`code` holds the signed link token issued for the pending row.
"""
from datetime import datetime
from sqlalchemy import String, Integer, BigInteger, Boolean, DateTime, ForeignKey, func, Index
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base


class TelegramLink(Base):
    __tablename__ = "telegram_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    telegram_id: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True,
    )  # sender id reported by Telegram, set only at confirmation
    app_user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(512), nullable=False)
    confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )  # NULL once confirmed
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_telegram_links_user", "app_user_id", "confirmed"),
        Index("idx_telegram_links_code", "code"),
        Index("idx_telegram_links_telegram", "telegram_id"),
    )
