"""
Expense Tracker Backend — Main Application

Single FastAPI service: sign-in, expenses, AI insights and the Telegram
bot webhook.
"""
import logging
import uuid
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.database import engine, Base
from app.exceptions import AppError, NotAuthenticatedError, UpstreamServiceError
from app.routers.auth import router as auth_router
from app.routers.expenses import router as expenses_router
from app.routers.insights import router as insights_router
from app.routers.integrations import router as integrations_router
from app.utils.responses import respond_error
from app.webhooks.telegram import router as telegram_webhook_router
from app import models  # noqa: F401

VERSION = "0.1.0"

# --- Logging ---
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- Sentry ---
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
    )
    logger.info("Sentry initialized")


# --- Lifespan: create tables on startup ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Expense Tracker Backend...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured.")
    if not settings.telegram_webhook_configured:
        logger.warning("Telegram bot token / webhook secret not set; webhook will answer 500")
    if not settings.google_oauth_configured:
        logger.info("Google OAuth not configured; /auth/google disabled")
    yield
    logger.info("Shutting down Expense Tracker Backend...")
    await engine.dispose()


# --- App ---
app = FastAPI(
    title="Expense Tracker Backend",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# --- Error envelope ---
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    details = exc.details
    if isinstance(exc, UpstreamServiceError) and exc.original_error is not None:
        logger.error(f"{exc.code}: {exc.message} ({exc.original_error!r})")
        if not settings.is_production:
            details = {"original_error": str(exc.original_error)}
    elif exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    authenticated = False if isinstance(exc, NotAuthenticatedError) else getattr(
        request.state, "authenticated", None
    )
    return respond_error(
        request,
        status=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=details,
        authenticated=authenticated,
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    codes = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}
    return respond_error(
        request,
        status=exc.status_code,
        code=codes.get(exc.status_code, "HTTP_ERROR"),
        message=str(exc.detail),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err["loc"] if p != "body") for err in exc.errors()]
    return respond_error(
        request,
        status=400,
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details={"fields": [f for f in fields if f]},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return respond_error(
        request,
        status=500,
        code="INTERNAL_ERROR",
        message="Internal server error",
        details=None if settings.is_production else {"error": str(exc)},
    )


# --- Health check ---
@app.get("/health")
async def health():
    return {"status": "ok", "version": VERSION}


# --- Routers ---
app.include_router(auth_router)
app.include_router(expenses_router)
app.include_router(insights_router)
app.include_router(integrations_router)
app.include_router(telegram_webhook_router)
