"""Shared fixtures: in-memory database, controllable clock, fake outbound clients."""
import os

# Settings are read at import time; these must be set before the app is imported.
os.environ["SESSION_SECRET"] = "test-session-secret-0123456789"
os.environ["TELEGRAM_LINK_SECRET"] = "test-link-secret-0123456789"
os.environ["TELEGRAM_BOT_USERNAME"] = "expense_test_bot"
os.environ["TELEGRAM_BOT_TOKEN"] = "123456:TEST-TOKEN"
os.environ["TELEGRAM_WEBHOOK_SECRET"] = "webhook-secret-for-tests"
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["GOOGLE_CLIENT_ID"] = ""
os.environ["GOOGLE_CLIENT_SECRET"] = ""
os.environ["SENTRY_DSN"] = ""
os.environ["ENVIRONMENT"] = "development"

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.dependencies import get_clock, get_insights_client, get_messenger
from app.main import app
from app.services.link_tokens import LinkTokenSigner
from app.services.users import UserStore

TEST_LINK_SECRET = os.environ["TELEGRAM_LINK_SECRET"]
WEBHOOK_SECRET = os.environ["TELEGRAM_WEBHOOK_SECRET"]


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeMessenger:
    def __init__(self):
        self.bot = None
        self.sent: list[tuple[int, str]] = []

    async def send_message(self, chat_id: int, text: str) -> bool:
        self.sent.append((chat_id, text))
        return True


class _FakeMessages:
    def __init__(self):
        self.calls: list[dict] = []
        self.error: Exception | None = None
        self.reply = "- Groceries are your biggest category.\n- Set a weekly cap."

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


class FakeAnthropic:
    def __init__(self):
        self.messages = _FakeMessages()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Clock and fakes
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def fixed_clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def signer(fixed_clock) -> LinkTokenSigner:
    return LinkTokenSigner(TEST_LINK_SECRET, fixed_clock)


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def llm() -> FakeAnthropic:
    return FakeAnthropic()


@pytest.fixture
async def make_user(db):
    users = UserStore(db)
    counter = {"n": 0}

    async def _make(name: str = "Test User"):
        counter["n"] += 1
        user = await users.create(
            name=name,
            email=f"user{counter['n']}@example.com",
            password_hash="$2b$10$notarealhashnotarealhashnotarealhashnotarealhashnot",
        )
        await db.commit()
        return user

    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
async def make_client(session_factory, clock, messenger, llm):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_messenger] = lambda: messenger
    app.dependency_overrides[get_insights_client] = lambda: llm

    clients: list[AsyncClient] = []

    def _make() -> AsyncClient:
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client) -> AsyncClient:
    return make_client()


async def _signup(client: AsyncClient, email: str = "alice@example.com", name: str = "Alice") -> dict:
    resp = await client.post(
        "/auth/signup",
        json={"email": email, "password": "correct-horse-battery", "name": name},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["user"]


@pytest.fixture
def signup():
    """Sign up through the API; the client keeps the session cookie."""
    return _signup
