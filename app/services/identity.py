"""
Identity resolution — "who, if anyone, is making this request".

One code path for every sign-in method. The inputs are the session data
loaded from the session store and the user already attached to the request
(if an earlier dependency resolved it). Rules are evaluated in order and
the first one that produces an outcome wins:

  1. no session                               → SESSION_MISSING
  2. session without any recognised claim     → SESSION_EMPTY
  3. user_id claim, no attached user          → look the user up
        found → authenticated / gone → SESSION_USER_NOT_FOUND
  4. attached user                            → authenticated (no lookup)
  5. anything else                            → SESSION_NO_USER
"""
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Protocol, Union

from app.models.user import User

logger = logging.getLogger(__name__)

USER_ID_CLAIM = "user_id"
AUTH_PROVIDER_CLAIM = "auth_provider"
RECOGNISED_CLAIMS = frozenset({USER_ID_CLAIM, AUTH_PROVIDER_CLAIM})


class UnauthenticatedReason(str, enum.Enum):
    SESSION_MISSING = "SESSION_MISSING"
    SESSION_EMPTY = "SESSION_EMPTY"
    SESSION_USER_NOT_FOUND = "SESSION_USER_NOT_FOUND"
    SESSION_NO_USER = "SESSION_NO_USER"


@dataclass(frozen=True)
class Authenticated:
    user: User
    authenticated: bool = True


@dataclass(frozen=True)
class Unauthenticated:
    reason: UnauthenticatedReason
    authenticated: bool = False


IdentityResult = Union[Authenticated, Unauthenticated]


@dataclass(frozen=True)
class IdentityRequest:
    session: Mapping | None
    user: User | None = None


class UserLookup(Protocol):
    async def find_by_id(self, user_id: int) -> User | None: ...


Rule = Callable[[IdentityRequest], Awaitable[IdentityResult | None]]


def _parse_user_id(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


class IdentityResolver:
    """Ordered-rule evaluator; at most one user-store read per call."""

    def __init__(self, users: UserLookup) -> None:
        self.users = users
        self.rules: list[Rule] = [
            self._no_session,
            self._empty_session,
            self._user_id_claim,
            self._attached_user,
        ]

    async def resolve(self, request: IdentityRequest) -> IdentityResult:
        for rule in self.rules:
            outcome = await rule(request)
            if outcome is not None:
                return outcome
        return Unauthenticated(UnauthenticatedReason.SESSION_NO_USER)

    async def _no_session(self, request: IdentityRequest) -> IdentityResult | None:
        if request.session is None:
            return Unauthenticated(UnauthenticatedReason.SESSION_MISSING)
        return None

    async def _empty_session(self, request: IdentityRequest) -> IdentityResult | None:
        if not any(request.session.get(claim) is not None for claim in RECOGNISED_CLAIMS):
            return Unauthenticated(UnauthenticatedReason.SESSION_EMPTY)
        return None

    async def _user_id_claim(self, request: IdentityRequest) -> IdentityResult | None:
        raw = request.session.get(USER_ID_CLAIM)
        if raw is None or request.user is not None:
            return None

        user_id = _parse_user_id(raw)
        user = await self.users.find_by_id(user_id) if user_id is not None else None
        if user is None:
            logger.info("Session user_id claim %r does not resolve to an account", raw)
            return Unauthenticated(UnauthenticatedReason.SESSION_USER_NOT_FOUND)
        return Authenticated(user)

    async def _attached_user(self, request: IdentityRequest) -> IdentityResult | None:
        if request.user is not None:
            return Authenticated(request.user)
        return None


async def resolve_identity(
    session: Mapping | None,
    users: UserLookup,
    attached: User | None = None,
) -> IdentityResult:
    return await IdentityResolver(users).resolve(IdentityRequest(session=session, user=attached))
