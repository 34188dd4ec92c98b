"""
Sign-in API.

POST /auth/signup           — email + password account (or add a password to a Google account)
POST /auth/login            — email + password
POST /auth/logout           — drop the server-side session
GET  /auth/me               — the signed-in user
GET  /auth/google           — redirect to Google consent
GET  /auth/google/callback  — Google redirect target
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import (
    clear_session_cookie,
    get_google_client,
    get_session_id,
    get_session_store,
    require_user,
    set_session_cookie,
)
from app.exceptions import (
    AppError,
    ConfigurationError,
    ConflictError,
    InvalidCredentialsError,
    ValidationFailedError,
)
from app.models.user import User
from app.services.google_oauth import GoogleOAuthClient, upsert_google_user
from app.services.identity import AUTH_PROVIDER_CLAIM, USER_ID_CLAIM
from app.services.passwords import MIN_PASSWORD_LENGTH, hash_password, verify_password
from app.services.sessions import SessionStore
from app.services.users import UserStore
from app.utils.responses import respond_success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Request schemas ──────────────────────────────────────────────────────────

class SignupRequest(BaseModel):
    email: str | None = None
    password: str | None = None
    name: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


def _session_claims(user: User, provider: str) -> dict:
    return {USER_ID_CLAIM: user.id, AUTH_PROVIDER_CLAIM: provider}


# ── Email / password ─────────────────────────────────────────────────────────

@router.post("/signup")
async def signup(
    body: SignupRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    email = (body.email or "").strip().lower()
    name = (body.name or "").strip()
    password = body.password or ""

    missing = [
        field for field, value in (("email", email), ("password", password), ("name", name))
        if not value
    ]
    if missing:
        raise ValidationFailedError("Missing required fields", details={"fields": missing})
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailedError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"fields": ["password"]},
        )

    users = UserStore(db)
    user = await users.find_by_email(email)
    if user is not None and user.password_hash:
        raise ConflictError("Email already in use", code="EMAIL_IN_USE")

    password_hash = hash_password(password)
    if user is not None:
        # Google-only account gains a password
        user = await users.update(user, password_hash=password_hash, name=name)
    else:
        user = await users.create(name=name, email=email, password_hash=password_hash)

    sid = await sessions.create(_session_claims(user, "password"))
    await db.commit()

    response = respond_success(
        request,
        code="AUTH_SIGNUP_SUCCESS",
        message="Account created",
        data={"user": user.to_public()},
        status=201,
        authenticated=True,
    )
    set_session_cookie(response, sid)
    return response


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    email = (body.email or "").strip().lower()
    password = body.password or ""
    if not email or not password:
        raise ValidationFailedError(
            "Missing required fields",
            details={"fields": [f for f, v in (("email", email), ("password", password)) if not v]},
        )

    user = await UserStore(db).find_by_email(email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Login failed for a password account")
        raise InvalidCredentialsError()

    sid = await sessions.create(_session_claims(user, "password"))
    await db.commit()

    response = respond_success(
        request,
        code="AUTH_LOGIN_SUCCESS",
        message="Logged in",
        data={"user": user.to_public()},
        authenticated=True,
    )
    set_session_cookie(response, sid)
    return response


@router.post("/logout")
async def logout(
    request: Request,
    db: AsyncSession = Depends(get_db),
    sid: str | None = Depends(get_session_id),
    sessions: SessionStore = Depends(get_session_store),
):
    await sessions.destroy(sid)
    await db.commit()

    response = respond_success(
        request,
        code="AUTH_LOGOUT_SUCCESS",
        message="Logged out",
        authenticated=False,
    )
    clear_session_cookie(response)
    return response


@router.get("/me")
async def me(request: Request, user: User = Depends(require_user)):
    return respond_success(
        request,
        code="AUTH_ME_SUCCESS",
        message="Authenticated",
        data={"user": user.to_public()},
        authenticated=True,
    )


# ── Google ───────────────────────────────────────────────────────────────────

def get_optional_google_client() -> GoogleOAuthClient | None:
    try:
        return get_google_client()
    except ConfigurationError:
        return None


@router.get("/google")
async def google_start(google: GoogleOAuthClient = Depends(get_google_client)):
    return RedirectResponse(google.authorization_url(), status_code=302)


@router.get("/google/callback")
async def google_callback(
    code: str | None = None,
    state: str | None = None,
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
    google: GoogleOAuthClient | None = Depends(get_optional_google_client),
):
    frontend = settings.FRONTEND_ORIGIN.rstrip("/")
    failure = RedirectResponse(f"{frontend}/login?error=oauth", status_code=302)

    if google is None or not code or not state or not google.verify_state(state):
        logger.warning("Google callback rejected: missing code or bad state")
        return failure

    try:
        profile = await google.fetch_profile(code)
        user = await upsert_google_user(UserStore(db), profile)
        sid = await sessions.create(_session_claims(user, "google"))
        await db.commit()
    except AppError as e:
        logger.warning(f"Google sign-in failed: {e.code} {e.message}")
        await db.rollback()
        return failure
    except SQLAlchemyError:
        logger.exception("Google sign-in failed while saving the account")
        await db.rollback()
        return failure

    logger.info(f"Google sign-in user={user.id}")
    response = RedirectResponse(frontend, status_code=302)
    set_session_cookie(response, sid)
    return response
