"""Password hashing (bcrypt)."""

import bcrypt

# Bcrypt accepts at most 72 bytes
_BCRYPT_MAX_BYTES = 72
_BCRYPT_ROUNDS = 10

MIN_PASSWORD_LENGTH = 8


def _to_bcrypt_secret(value: str) -> bytes:
    return value.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(
        _to_bcrypt_secret(password), bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)
    ).decode("ascii")


def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed or not hashed.startswith("$2"):
        return False
    try:
        return bcrypt.checkpw(_to_bcrypt_secret(plain), hashed.encode("ascii"))
    except ValueError:
        return False
