"""
FastAPI dependencies: settings → service construction, session → identity.

This is the only layer that reads `settings`; everything below it receives
configuration through constructors.
"""
import logging
from datetime import timedelta
from functools import lru_cache

import anthropic
from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from telegram import Bot

from app.config import settings
from app.database import get_db
from app.exceptions import ConfigurationError, NotAuthenticatedError
from app.models.user import User
from app.services.google_oauth import GoogleOAuthClient
from app.services.identity import Authenticated, IdentityResult, resolve_identity
from app.services.insights import InsightsService
from app.services.link_tokens import LinkTokenPayload, LinkTokenSigner
from app.services.links import LinkStore, TelegramLinker
from app.services.sessions import SessionStore
from app.services.telegram import TelegramMessenger
from app.services.users import UserStore
from app.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


def get_clock() -> Clock:
    return utc_now


# ── Link tokens ──────────────────────────────────────────────────────────────

def get_link_signer(clock: Clock = Depends(get_clock)) -> LinkTokenSigner:
    return LinkTokenSigner(settings.TELEGRAM_LINK_SECRET, clock)


@lru_cache
def _default_signer() -> LinkTokenSigner:
    return LinkTokenSigner(settings.TELEGRAM_LINK_SECRET)


def sign_link_token(user_id: int, ttl_minutes: int | None = None) -> str:
    return _default_signer().sign(user_id, ttl_minutes or settings.TELEGRAM_LINK_TTL_MINUTES)


def verify_link_token(token: str) -> LinkTokenPayload | None:
    return _default_signer().verify(token)


# ── Sessions and identity ────────────────────────────────────────────────────

def get_session_store(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SessionStore:
    return SessionStore(db, timedelta(hours=settings.SESSION_TTL_HOURS), clock)


def get_session_id(request: Request) -> str | None:
    return request.cookies.get(settings.SESSION_COOKIE_NAME) or None


async def get_session_state(
    sid: str | None = Depends(get_session_id),
    store: SessionStore = Depends(get_session_store),
) -> dict | None:
    state = await store.read(sid)
    if sid and state is None:
        # Persist the expired-row delete even when the route itself never commits
        await store.db.commit()
    return state


async def get_identity(
    request: Request,
    session: dict | None = Depends(get_session_state),
    db: AsyncSession = Depends(get_db),
) -> IdentityResult:
    attached = getattr(request.state, "user", None)
    identity = await resolve_identity(session, UserStore(db), attached)
    if isinstance(identity, Authenticated):
        request.state.user = identity.user
    request.state.authenticated = identity.authenticated
    return identity


async def require_user(identity: IdentityResult = Depends(get_identity)) -> User:
    if isinstance(identity, Authenticated):
        return identity.user
    raise NotAuthenticatedError(identity.reason.value)


def set_session_cookie(response: Response, sid: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=sid,
        max_age=settings.SESSION_TTL_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        path="/",
    )


# ── Telegram ─────────────────────────────────────────────────────────────────

def get_linker(
    db: AsyncSession = Depends(get_db),
    signer: LinkTokenSigner = Depends(get_link_signer),
    clock: Clock = Depends(get_clock),
) -> TelegramLinker:
    return TelegramLinker(
        LinkStore(db),
        signer,
        bot_username=settings.TELEGRAM_BOT_USERNAME,
        ttl_minutes=settings.TELEGRAM_LINK_TTL_MINUTES,
        clock=clock,
    )


@lru_cache
def _bot() -> Bot:
    return Bot(token=settings.TELEGRAM_BOT_TOKEN)


def get_messenger() -> TelegramMessenger | None:
    if not settings.TELEGRAM_BOT_TOKEN:
        return None
    return TelegramMessenger(_bot())


# ── Google / Anthropic ───────────────────────────────────────────────────────

def get_google_client() -> GoogleOAuthClient:
    return GoogleOAuthClient(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        redirect_uri=f"{settings.BACKEND_ORIGIN.rstrip('/')}/auth/google/callback",
        state_secret=settings.SESSION_SECRET,
    )


@lru_cache
def _anthropic_client() -> anthropic.AsyncAnthropic:
    return anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)


def get_insights_client() -> anthropic.AsyncAnthropic:
    if not settings.ANTHROPIC_API_KEY:
        raise ConfigurationError("AI is not configured", code="AI_NOT_CONFIGURED")
    return _anthropic_client()


def get_insights_service(
    db: AsyncSession = Depends(get_db),
    client: anthropic.AsyncAnthropic = Depends(get_insights_client),
    clock: Clock = Depends(get_clock),
) -> InsightsService:
    return InsightsService(
        db,
        client,
        model=settings.INSIGHTS_MODEL,
        daily_limit=settings.INSIGHTS_DAILY_LIMIT,
        clock=clock,
    )
