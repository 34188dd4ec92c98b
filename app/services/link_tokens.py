"""
Link token signer — stateless, HMAC-signed, expiring proof that an account
owner asked to link a Telegram chat.

Token format:  b64url(payload_json) + "." + b64url(hmac_sha256(payload_json))
Payload:       {"uid": <user id>, "exp": <epoch ms>, "n": <nonce>}

The token itself is never stored as "used"; single-use is enforced by the
telegram_links row it was issued with (see app.services.links).
"""
import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from app.exceptions import ConfigurationError
from app.utils.clock import Clock, utc_now, to_epoch_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkTokenPayload:
    uid: int
    exp: int  # epoch ms
    n: str


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(segment: str) -> bytes | None:
    """
    Strict base64url decode. Returns None for anything that is not the
    canonical unpadded encoding of some byte string.
    """
    if not segment:
        return None
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError):
        return None
    # Reject non-canonical encodings (e.g. stray bits in the last character)
    if _b64url_encode(raw) != segment:
        return None
    return raw


class LinkTokenSigner:
    """Signs and verifies link tokens with one server-held secret."""

    def __init__(self, secret: str, clock: Clock = utc_now) -> None:
        if not secret or not secret.strip():
            raise ConfigurationError(
                "Link token secret is empty; set TELEGRAM_LINK_SECRET",
                code="TELEGRAM_LINK_SECRET_MISSING",
            )
        self._key = secret.encode("utf-8")
        self._clock = clock

    def _sign_bytes(self, payload: bytes) -> bytes:
        return hmac.new(self._key, payload, hashlib.sha256).digest()

    def sign(self, user_id: int, ttl_minutes: int) -> str:
        if ttl_minutes <= 0:
            raise ValueError("ttl_minutes must be positive")
        expires = self._clock() + timedelta(minutes=ttl_minutes)
        payload = {
            "uid": user_id,
            "exp": to_epoch_ms(expires),
            "n": secrets.token_hex(4),
        }
        payload_bytes = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        signature = self._sign_bytes(payload_bytes)
        return f"{_b64url_encode(payload_bytes)}.{_b64url_encode(signature)}"

    def verify(self, token: str) -> LinkTokenPayload | None:
        """
        Return the payload if the token is authentic and unexpired, else None.
        Never raises: every failure means "not authorized".
        """
        if not isinstance(token, str) or token.count(".") != 1:
            return None
        payload_b64, sig_b64 = token.split(".")

        payload_bytes = _b64url_decode(payload_b64)
        signature = _b64url_decode(sig_b64)
        if payload_bytes is None or signature is None:
            return None

        expected = self._sign_bytes(payload_bytes)
        if not hmac.compare_digest(expected, signature):
            return None

        try:
            data = json.loads(payload_bytes.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None

        uid = data.get("uid")
        exp = data.get("exp")
        nonce = data.get("n", "")
        if not isinstance(uid, int) or isinstance(uid, bool):
            return None
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            return None

        if to_epoch_ms(self._clock()) > exp:
            return None

        return LinkTokenPayload(uid=uid, exp=int(exp), n=str(nonce))
