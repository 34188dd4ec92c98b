"""Tests for the session store, user store, passwords and Google account upsert."""
from datetime import timedelta

import httpx
import pytest

from app.services.google_oauth import GoogleOAuthClient, GoogleProfile, upsert_google_user
from app.services.passwords import hash_password, verify_password
from app.services.sessions import SessionStore
from app.services.users import UserStore
from app.exceptions import ConfigurationError, UpstreamServiceError
from app.models.web_session import WebSession


# ---------------------------------------------------------------------------
# SessionStore
# ---------------------------------------------------------------------------

class TestSessionStore:
    async def test_create_read_destroy(self, db, fixed_clock):
        store = SessionStore(db, timedelta(hours=1), fixed_clock)
        sid = await store.create({"user_id": 1, "auth_provider": "password"})
        assert len(sid) >= 32

        assert await store.read(sid) == {"user_id": 1, "auth_provider": "password"}
        await store.destroy(sid)
        assert await store.read(sid) is None

    async def test_expired_session_is_absent(self, db, fixed_clock):
        store = SessionStore(db, timedelta(hours=1), fixed_clock)
        sid = await store.create({"user_id": 1})
        fixed_clock.advance(hours=1)
        assert await store.read(sid) is None
        assert await db.get(WebSession, sid) is None

    @pytest.mark.parametrize("sid", [None, "", "unknown"])
    async def test_missing(self, db, fixed_clock, sid):
        store = SessionStore(db, timedelta(hours=1), fixed_clock)
        assert await store.read(sid) is None


# ---------------------------------------------------------------------------
# UserStore / passwords
# ---------------------------------------------------------------------------

class TestUserStore:
    async def test_email_lookup_is_case_insensitive(self, db):
        users = UserStore(db)
        created = await users.create(name="Ann", email=" Ann@Example.COM ", password_hash="x")
        assert created.email == "ann@example.com"
        assert (await users.find_by_email("ANN@example.com")).id == created.id

    async def test_user_needs_a_credential(self, db):
        with pytest.raises(ValueError):
            await UserStore(db).create(name="Nobody", email="n@example.com")

    async def test_update_unknown_field(self, db):
        users = UserStore(db)
        user = await users.create(name="Ann", email="a@example.com", password_hash="x")
        with pytest.raises(AttributeError):
            await users.update(user, favourite_colour="blue")


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("correct-horse-battery")
        assert hashed.startswith("$2")
        assert verify_password("correct-horse-battery", hashed)
        assert not verify_password("wrong", hashed)

    @pytest.mark.parametrize("hashed", [None, "", "plaintext"])
    def test_unusable_hash(self, hashed):
        assert verify_password("anything", hashed) is False


# ---------------------------------------------------------------------------
# Google
# ---------------------------------------------------------------------------

def profile(**overrides) -> GoogleProfile:
    values = {
        "google_id": "g-123",
        "email": "gina@example.com",
        "name": "Gina",
        "avatar_url": "https://example.com/a.png",
    }
    values.update(overrides)
    return GoogleProfile(**values)


class TestGoogleUpsert:
    async def test_creates_google_only_account(self, db):
        users = UserStore(db)
        user = await upsert_google_user(users, profile())
        assert user.google_id == "g-123"
        assert user.password_hash is None

    async def test_known_google_id_returns_same_user(self, db):
        users = UserStore(db)
        first = await upsert_google_user(users, profile())
        second = await upsert_google_user(users, profile(name="Renamed"))
        assert first.id == second.id

    async def test_attaches_to_existing_email(self, db):
        users = UserStore(db)
        existing = await users.create(
            name="Gina", email="gina@example.com", password_hash="x", avatar_url="old.png"
        )
        user = await upsert_google_user(users, profile())
        assert user.id == existing.id
        assert user.google_id == "g-123"
        assert user.avatar_url == "https://example.com/a.png"
        assert user.password_hash == "x"

    async def test_keeps_avatar_when_google_has_none(self, db):
        users = UserStore(db)
        await users.create(
            name="Gina", email="gina@example.com", password_hash="x", avatar_url="old.png"
        )
        user = await upsert_google_user(users, profile(avatar_url=None))
        assert user.avatar_url == "old.png"


class TestGoogleState:
    def client(self) -> GoogleOAuthClient:
        return GoogleOAuthClient(
            client_id="id",
            client_secret="secret",
            redirect_uri="http://localhost:8000/auth/google/callback",
            state_secret="state-secret-0123456789",
        )

    def test_state_round_trip(self):
        client = self.client()
        assert client.verify_state(client.make_state())

    def test_state_from_other_secret_rejected(self):
        other = GoogleOAuthClient(
            client_id="id",
            client_secret="secret",
            redirect_uri="x",
            state_secret="another-secret-0123456789",
        )
        assert not self.client().verify_state(other.make_state())

    @pytest.mark.parametrize("state", ["", "garbage", "!!!"])
    def test_malformed_state(self, state):
        assert not self.client().verify_state(state)

    def test_authorization_url(self):
        url = self.client().authorization_url()
        assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        assert "client_id=id" in url
        assert "state=" in url

    def test_not_configured(self):
        with pytest.raises(ConfigurationError) as exc:
            GoogleOAuthClient(client_id="", client_secret="", redirect_uri="x", state_secret="s")
        assert exc.value.code == "GOOGLE_OAUTH_NOT_CONFIGURED"


def google_api(token=None, profile=None, token_status: int = 200):
    """MockTransport handler for Google's token and userinfo endpoints."""
    token = httpx.Response(token_status, json={"access_token": "at-1"}) if token is None else token
    profile = (
        httpx.Response(200, json={
            "sub": "g-123",
            "email": "Gina@Example.com",
            "name": "Gina",
            "picture": "https://example.com/a.png",
        })
        if profile is None else profile
    )

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            return token
        assert request.headers["Authorization"] == "Bearer at-1"
        return profile

    return handler


class TestGoogleFetchProfile:
    async def fetch(self, handler) -> GoogleProfile:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = GoogleOAuthClient(
                client_id="id",
                client_secret="secret",
                redirect_uri="x",
                state_secret="state-secret-0123456789",
                http_client=http,
            )
            return await client.fetch_profile("auth-code")

    async def test_success(self):
        result = await self.fetch(google_api())
        assert result == GoogleProfile(
            google_id="g-123",
            email="gina@example.com",
            name="Gina",
            avatar_url="https://example.com/a.png",
        )

    @pytest.mark.parametrize(
        "handler",
        [
            google_api(token_status=400),
            google_api(token=httpx.Response(200, json={})),
            google_api(token=httpx.Response(200, text="<html>oops</html>")),
            google_api(token=httpx.Response(200, json=["at-1"])),
            google_api(profile=httpx.Response(500, json={})),
            google_api(profile=httpx.Response(200, json={"email": "gina@example.com"})),
            google_api(profile=httpx.Response(200, text="<html>oops</html>")),
            google_api(profile=httpx.Response(200, json="g-123")),
        ],
        ids=[
            "token-status",
            "no-access-token",
            "token-not-json",
            "token-not-object",
            "profile-status",
            "profile-without-sub",
            "profile-not-json",
            "profile-not-object",
        ],
    )
    async def test_failures(self, handler):
        with pytest.raises(UpstreamServiceError) as exc:
            await self.fetch(handler)
        assert exc.value.code == "GOOGLE_OAUTH_FAILED"

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamServiceError) as exc:
            await self.fetch(handler)
        assert exc.value.code == "GOOGLE_OAUTH_FAILED"
        assert isinstance(exc.value.original_error, httpx.ConnectError)
