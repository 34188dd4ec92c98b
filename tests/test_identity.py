"""Tests for IdentityResolver (session → authenticated user or reason)."""
import pytest

from app.models.user import User
from app.services.identity import (
    Authenticated,
    IdentityRequest,
    IdentityResolver,
    Unauthenticated,
    UnauthenticatedReason,
    resolve_identity,
)


class CountingUsers:
    def __init__(self, *users: User):
        self.by_id = {u.id: u for u in users}
        self.lookups: list[int] = []

    async def find_by_id(self, user_id: int) -> User | None:
        self.lookups.append(user_id)
        return self.by_id.get(user_id)


@pytest.fixture
def alice() -> User:
    return User(id=7, name="Alice", email="alice@example.com")


@pytest.fixture
def users(alice) -> CountingUsers:
    return CountingUsers(alice)


class TestRules:
    async def test_no_session(self, users):
        result = await resolve_identity(None, users)
        assert result == Unauthenticated(UnauthenticatedReason.SESSION_MISSING)
        assert users.lookups == []

    @pytest.mark.parametrize("session", [{}, {"theme": "dark"}, {"user_id": None}])
    async def test_session_without_claims(self, users, session):
        result = await resolve_identity(session, users)
        assert isinstance(result, Unauthenticated)
        assert result.reason is UnauthenticatedReason.SESSION_EMPTY

    async def test_user_id_claim_resolves(self, users, alice):
        result = await resolve_identity({"user_id": 7, "auth_provider": "password"}, users)
        assert isinstance(result, Authenticated)
        assert result.user is alice
        assert result.authenticated is True
        assert users.lookups == [7]

    async def test_numeric_string_claim(self, users, alice):
        result = await resolve_identity({"user_id": "7"}, users)
        assert isinstance(result, Authenticated)
        assert result.user is alice

    async def test_unknown_user(self, users):
        result = await resolve_identity({"user_id": 8}, users)
        assert result == Unauthenticated(UnauthenticatedReason.SESSION_USER_NOT_FOUND)
        assert users.lookups == [8]

    @pytest.mark.parametrize("raw", ["abc", True, 7.5, [7]])
    async def test_malformed_claim_is_not_found(self, users, raw):
        result = await resolve_identity({"user_id": raw}, users)
        assert result == Unauthenticated(UnauthenticatedReason.SESSION_USER_NOT_FOUND)
        assert users.lookups == []

    async def test_attached_user_skips_lookup(self, users, alice):
        result = await resolve_identity({"user_id": 7}, users, attached=alice)
        assert isinstance(result, Authenticated)
        assert result.user is alice
        assert users.lookups == []

    async def test_provider_only_session(self, users):
        result = await resolve_identity({"auth_provider": "google"}, users)
        assert result == Unauthenticated(UnauthenticatedReason.SESSION_NO_USER)

    async def test_provider_only_session_with_attached_user(self, users, alice):
        result = await resolve_identity({"auth_provider": "google"}, users, attached=alice)
        assert isinstance(result, Authenticated)

    async def test_empty_session_wins_over_attached_user(self, users, alice):
        result = await resolve_identity({}, users, attached=alice)
        assert result == Unauthenticated(UnauthenticatedReason.SESSION_EMPTY)


class TestResolver:
    async def test_single_lookup_per_call(self, users):
        resolver = IdentityResolver(users)
        await resolver.resolve(IdentityRequest(session={"user_id": 7}))
        await resolver.resolve(IdentityRequest(session={"user_id": 8}))
        assert users.lookups == [7, 8]

    def test_reason_values_are_stable(self):
        assert [r.value for r in UnauthenticatedReason] == [
            "SESSION_MISSING",
            "SESSION_EMPTY",
            "SESSION_USER_NOT_FOUND",
            "SESSION_NO_USER",
        ]
