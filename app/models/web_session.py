"""
WebSession — server-side session store keyed by the opaque id in the cookie.
`data` holds the claims (user_id, auth_provider) set at sign-in.
"""
from datetime import datetime
from sqlalchemy import String, DateTime, func, Index
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base, JSONType


class WebSession(Base):
    __tablename__ = "web_sessions"

    sid: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_web_sessions_expires", "expires_at"),
    )
