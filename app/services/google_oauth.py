"""
Google sign-in: authorization URL, code exchange, profile → local user.

The OAuth `state` is an HMAC-signed "nonce:issued_at" pair so the callback
can be verified without server-side storage.
"""
import base64
import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from app.exceptions import ConfigurationError, UpstreamServiceError
from app.models.user import User
from app.services.users import UserStore

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
SCOPES = ["openid", "profile", "email"]
STATE_MAX_AGE_SECONDS = 600


@dataclass(frozen=True)
class GoogleProfile:
    google_id: str
    email: str | None
    name: str
    avatar_url: str | None


class GoogleOAuthClient:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        state_secret: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not (client_id and client_secret):
            raise ConfigurationError(
                "Google OAuth is not configured (GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET)",
                code="GOOGLE_OAUTH_NOT_CONFIGURED",
            )
        self.client_id = client_id.strip()
        self.client_secret = client_secret.strip()
        self.redirect_uri = redirect_uri
        self._state_key = state_secret.encode("utf-8")
        self.http_client = http_client

    # ── state ───────────────────────────────────────────────────────────────

    def _sign(self, payload: str) -> str:
        return hmac.new(self._state_key, payload.encode(), hashlib.sha256).hexdigest()

    def make_state(self) -> str:
        payload = f"{secrets.token_urlsafe(16)}:{int(time.time())}"
        raw = f"{payload}:{self._sign(payload)}"
        return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")

    def verify_state(self, state: str) -> bool:
        try:
            padded = state + "=" * (-len(state) % 4)
            raw = base64.urlsafe_b64decode(padded).decode()
        except (ValueError, UnicodeDecodeError):
            return False
        payload, _, sig = raw.rpartition(":")
        if not payload or not hmac.compare_digest(sig, self._sign(payload)):
            return False
        _, _, issued = payload.rpartition(":")
        if not issued.isdigit():
            return False
        return time.time() - int(issued) <= STATE_MAX_AGE_SECONDS

    def authorization_url(self) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "state": self.make_state(),
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    # ── code exchange ───────────────────────────────────────────────────────

    @staticmethod
    def _json_object(resp: httpx.Response, what: str) -> dict:
        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamServiceError(
                f"Google {what} response is not JSON", code="GOOGLE_OAUTH_FAILED", original_error=e
            )
        if not isinstance(body, dict):
            raise UpstreamServiceError(
                f"Google {what} response is not an object", code="GOOGLE_OAUTH_FAILED"
            )
        return body

    async def fetch_profile(self, code: str) -> GoogleProfile:
        client = self.http_client or httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))
        try:
            token_resp = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            if token_resp.status_code != 200:
                logger.warning(
                    "Google token exchange failed: %s %s",
                    token_resp.status_code, token_resp.text[:200],
                )
                raise UpstreamServiceError("Google token exchange failed", code="GOOGLE_OAUTH_FAILED")
            access_token = self._json_object(token_resp, "token").get("access_token")
            if not access_token or not isinstance(access_token, str):
                raise UpstreamServiceError("Google returned no access token", code="GOOGLE_OAUTH_FAILED")

            info_resp = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if info_resp.status_code != 200:
                raise UpstreamServiceError("Google profile request failed", code="GOOGLE_OAUTH_FAILED")
            info = self._json_object(info_resp, "profile")
        except httpx.HTTPError as e:
            raise UpstreamServiceError("Google is unreachable", code="GOOGLE_OAUTH_FAILED", original_error=e)
        finally:
            if self.http_client is None:
                await client.aclose()

        if not info.get("sub"):
            raise UpstreamServiceError("Google profile has no subject", code="GOOGLE_OAUTH_FAILED")
        return GoogleProfile(
            google_id=str(info["sub"]),
            email=str(info["email"]).strip().lower() if info.get("email") else None,
            name=str(info.get("name") or "Unknown"),
            avatar_url=str(info["picture"]) if info.get("picture") else None,
        )


async def upsert_google_user(users: UserStore, profile: GoogleProfile) -> User:
    """
    Known Google id → that user; known email → attach the Google id to it;
    otherwise create a Google-only account.
    """
    user = await users.find_by_google_id(profile.google_id)
    if user is not None:
        return user

    if profile.email:
        user = await users.find_by_email(profile.email)
        if user is not None:
            return await users.update(
                user,
                google_id=profile.google_id,
                avatar_url=profile.avatar_url or user.avatar_url,
            )

    return await users.create(
        name=profile.name,
        email=profile.email,
        google_id=profile.google_id,
        avatar_url=profile.avatar_url,
    )
