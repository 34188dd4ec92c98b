"""
Telegram account linking — binds one Telegram identity to one web account.

    NoLink ──start_link──► Pending ──confirm_link──► Confirmed
                              │
                              └── token / row expiry ──► (NoLink, row left behind)

start_link runs from an authenticated web session; confirm_link runs from
the public bot webhook, where authenticity comes only from the signed
token and the sender id Telegram reports.
db.commit() is the caller's responsibility.
"""
import enum
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConfigurationError
from app.models.telegram_link import TelegramLink
from app.services.link_tokens import LinkTokenSigner
from app.utils.clock import Clock, utc_now, as_utc, to_epoch_ms

logger = logging.getLogger(__name__)

DEEP_LINK_PREFIX = "link_"
_SUFFIX_RE = re.compile(r"__\d+$")


# ── Link store ───────────────────────────────────────────────────────────────

class LinkStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_pending(self, app_user_id: int) -> list[TelegramLink]:
        result = await self.db.execute(
            select(TelegramLink).where(
                TelegramLink.app_user_id == app_user_id,
                TelegramLink.confirmed.is_(False),
            )
        )
        return list(result.scalars().all())

    async def delete_pending(self, app_user_id: int) -> int:
        result = await self.db.execute(
            delete(TelegramLink).where(
                TelegramLink.app_user_id == app_user_id,
                TelegramLink.confirmed.is_(False),
            )
        )
        await self.db.flush()
        return result.rowcount or 0

    async def insert(
        self, *, app_user_id: int, code: str, expires_at: datetime
    ) -> TelegramLink:
        link = TelegramLink(
            telegram_id=None,
            app_user_id=app_user_id,
            code=code,
            confirmed=False,
            expires_at=expires_at,
        )
        self.db.add(link)
        await self.db.flush()
        return link

    async def find_by_code(
        self, code: str, app_user_id: int, *, for_update: bool = False
    ) -> TelegramLink | None:
        stmt = select(TelegramLink).where(
            TelegramLink.code == code,
            TelegramLink.app_user_id == app_user_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def confirm(self, code: str, app_user_id: int, telegram_id: int) -> int:
        # Supersede earlier bindings of this account or this Telegram identity
        await self.db.execute(
            delete(TelegramLink).where(
                TelegramLink.confirmed.is_(True),
                (TelegramLink.app_user_id == app_user_id)
                | (TelegramLink.telegram_id == telegram_id),
            )
        )
        result = await self.db.execute(
            update(TelegramLink)
            .where(
                TelegramLink.code == code,
                TelegramLink.app_user_id == app_user_id,
                TelegramLink.confirmed.is_(False),
            )
            .values(telegram_id=telegram_id, confirmed=True, expires_at=None)
        )
        await self.db.flush()
        return result.rowcount or 0

    async def find_confirmed(self, app_user_id: int) -> TelegramLink | None:
        result = await self.db.execute(
            select(TelegramLink)
            .where(
                TelegramLink.app_user_id == app_user_id,
                TelegramLink.confirmed.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_confirmed_by_telegram(self, telegram_id: int) -> TelegramLink | None:
        result = await self.db.execute(
            select(TelegramLink)
            .where(
                TelegramLink.telegram_id == telegram_id,
                TelegramLink.confirmed.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()


# ── State machine ────────────────────────────────────────────────────────────

class ConfirmOutcome(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    TOKEN_INVALID = "TOKEN_INVALID"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_CONFIRMED = "ALREADY_CONFIRMED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class ConfirmResult:
    outcome: ConfirmOutcome
    app_user_id: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is ConfirmOutcome.CONFIRMED


@dataclass(frozen=True)
class StartedLink:
    url: str
    token: str
    expires_at: datetime


def extract_link_token(text: str) -> str | None:
    """
    Pull the token out of a "/start link_<token>__<suffix>" command.
    Returns None when the command carries no link payload.
    """
    for part in text.split():
        if part.startswith(DEEP_LINK_PREFIX):
            raw = part[len(DEEP_LINK_PREFIX):]
            token = _SUFFIX_RE.sub("", raw)
            return token or None
    return None


class TelegramLinker:
    def __init__(
        self,
        store: LinkStore,
        signer: LinkTokenSigner,
        *,
        bot_username: str,
        ttl_minutes: int = 5,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.signer = signer
        self.bot_username = (bot_username or "").lstrip("@")
        self.ttl_minutes = ttl_minutes
        self.clock = clock

    async def start_link(self, user_id: int) -> StartedLink:
        """Issue a fresh deep link, superseding any pending one for this user."""
        if not self.bot_username:
            raise ConfigurationError(
                "Bot username is not configured",
                code="TELEGRAM_BOT_USERNAME_MISSING",
            )

        now = self.clock()
        token = self.signer.sign(user_id, self.ttl_minutes)
        expires_at = now + timedelta(minutes=self.ttl_minutes)

        removed = await self.store.delete_pending(user_id)
        await self.store.insert(app_user_id=user_id, code=token, expires_at=expires_at)

        url = f"https://t.me/{self.bot_username}?start={DEEP_LINK_PREFIX}{token}__{to_epoch_ms(now)}"
        logger.info(
            f"[telegram] start-link user={user_id} expires_at={expires_at.isoformat()} "
            f"superseded={removed}"
        )
        return StartedLink(url=url, token=token, expires_at=expires_at)

    async def confirm_link(self, token: str, telegram_id: int) -> ConfirmResult:
        """
        Bind telegram_id to the account the token was issued for.
        telegram_id must be the sender id reported by Telegram itself.
        """
        payload = self.signer.verify(token)
        if payload is None:
            return ConfirmResult(ConfirmOutcome.TOKEN_INVALID)

        link = await self.store.find_by_code(token, payload.uid, for_update=True)
        if link is None:
            return ConfirmResult(ConfirmOutcome.NOT_FOUND, payload.uid)
        if link.confirmed:
            return ConfirmResult(ConfirmOutcome.ALREADY_CONFIRMED, payload.uid)
        if link.expires_at is not None and as_utc(link.expires_at) < self.clock():
            return ConfirmResult(ConfirmOutcome.EXPIRED, payload.uid)

        updated = await self.store.confirm(token, payload.uid, telegram_id)
        if updated != 1:
            return ConfirmResult(ConfirmOutcome.NOT_FOUND, payload.uid)

        logger.info(f"[telegram] link confirmed user={payload.uid} telegram_id={telegram_id}")
        return ConfirmResult(ConfirmOutcome.CONFIRMED, payload.uid)

    async def link_status(self, user_id: int) -> bool:
        return await self.store.find_confirmed(user_id) is not None
