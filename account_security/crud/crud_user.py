# account_security/crud/crud_user.py
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from account_security.db.models.user import User
from account_security.services.accounts import Account

logger = logging.getLogger(__name__)


def _to_account(user: User) -> Account:
    return Account(
        id=user.id,
        email=user.email,
        hashed_password=user.hashed_password,
        is_active=user.is_active,
        deleted_at=user.deleted_at,
    )


class SqlAlchemyAccountStore:
    """Account store backed by the ``users`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def get_active_by_email(self, email: str) -> Account | None:
        logger.debug("Looking up active account by email")
        async with self._session_maker() as db:
            result = await db.execute(
                select(User).filter(
                    User.email == email,
                    User.is_active.is_(True),
                    User.deleted_at.is_(None),
                )
            )
            user = result.scalars().first()
        return _to_account(user) if user else None

    async def get_by_id(self, account_id: str) -> Account | None:
        async with self._session_maker() as db:
            user = await db.get(User, account_id)
        return _to_account(user) if user else None

    async def create(
        self, email: str, hashed_password: str | None, *, is_active: bool = True
    ) -> Account:
        async with self._session_maker() as db:
            db_obj = User(email=email.strip().lower(), hashed_password=hashed_password, is_active=is_active)
            db.add(db_obj)
            await db.commit()
            await db.refresh(db_obj)
            logger.info(f"User {db_obj.id} created.")
            return _to_account(db_obj)
