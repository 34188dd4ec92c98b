"""
User store — keyed lookups and writes on the users table.
The caller owns the transaction (db.commit() is the caller's responsibility).
"""
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User

logger = logging.getLogger(__name__)


class UserStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_id(self, user_id: int) -> User | None:
        return await self.db.get(User, user_id)

    async def find_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def find_by_google_id(self, google_id: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.google_id == google_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        name: str,
        email: str | None = None,
        password_hash: str | None = None,
        google_id: str | None = None,
        avatar_url: str | None = None,
    ) -> User:
        if not (password_hash or google_id):
            raise ValueError("A user needs a password or an external identity")
        user = User(
            name=name,
            email=email.strip().lower() if email else None,
            password_hash=password_hash,
            google_id=google_id,
            avatar_url=avatar_url,
        )
        self.db.add(user)
        await self.db.flush()
        logger.info(f"User created: id={user.id} google={'yes' if google_id else 'no'}")
        return user

    async def update(self, user: User, **fields) -> User:
        for key, value in fields.items():
            if not hasattr(User, key):
                raise AttributeError(f"User has no field {key!r}")
            setattr(user, key, value)
        await self.db.flush()
        return user
