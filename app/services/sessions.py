"""
Session store — server-side sessions referenced by an opaque cookie value.
"""
import logging
import secrets
from datetime import timedelta

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.web_session import WebSession
from app.utils.clock import Clock, utc_now, as_utc

logger = logging.getLogger(__name__)


class SessionStore:
    """create / read / destroy with a fixed time-to-live. Caller commits."""

    def __init__(self, db: AsyncSession, ttl: timedelta, clock: Clock = utc_now) -> None:
        self.db = db
        self.ttl = ttl
        self.clock = clock

    async def create(self, data: dict) -> str:
        sid = secrets.token_urlsafe(32)
        self.db.add(
            WebSession(sid=sid, data=dict(data), expires_at=self.clock() + self.ttl)
        )
        await self.db.flush()
        return sid

    async def read(self, sid: str | None) -> dict | None:
        if not sid:
            return None
        row = await self.db.get(WebSession, sid)
        if row is None:
            return None
        if as_utc(row.expires_at) <= self.clock():
            await self.db.delete(row)
            await self.db.flush()
            return None
        return dict(row.data or {})

    async def destroy(self, sid: str | None) -> None:
        if not sid:
            return
        await self.db.execute(delete(WebSession).where(WebSession.sid == sid))
        await self.db.flush()
