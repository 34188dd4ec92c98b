"""
AIUsage — per-user, per-day counter of insight requests.
"""
from datetime import date
from sqlalchemy import Integer, Date, ForeignKey, PrimaryKeyConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base


class AIUsage(Base):
    __tablename__ = "ai_usage"

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    usage_date: Mapped[date] = mapped_column(Date, nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        PrimaryKeyConstraint("user_id", "usage_date"),
    )
