# account_security/services/accounts.py
"""
Account store interface.

The security services only need two lookups from the account store, so the
interface stays that narrow. The SQLAlchemy adapter lives in
``account_security.crud.crud_user``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from account_security.core.security import get_password_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Account:
    """Read-only view of a user account."""

    id: str
    email: str
    hashed_password: str | None
    is_active: bool = True
    deleted_at: datetime | None = None

    @property
    def is_usable(self) -> bool:
        return self.is_active and self.deleted_at is None

    @property
    def has_password(self) -> bool:
        return bool(self.hashed_password)


class AccountStore(Protocol):
    async def get_active_by_email(self, email: str) -> Account | None:
        """Active, non-deleted account with this (normalized) email."""
        ...

    async def get_by_id(self, account_id: str) -> Account | None: ...


class InMemoryAccountStore:
    """Dict-backed account store for development and tests."""

    def __init__(self) -> None:
        self._by_id: dict[str, Account] = {}

    def add(
        self,
        email: str,
        password: str | None = None,
        *,
        is_active: bool = True,
        deleted_at: datetime | None = None,
        account_id: str | None = None,
    ) -> Account:
        account = Account(
            id=account_id or str(uuid.uuid4()),
            email=email.strip().lower(),
            hashed_password=get_password_hash(password) if password else None,
            is_active=is_active,
            deleted_at=deleted_at,
        )
        self._by_id[account.id] = account
        logger.debug(f"Account {account.id} added to in-memory store")
        return account

    async def get_active_by_email(self, email: str) -> Account | None:
        for account in self._by_id.values():
            if account.email == email and account.is_usable:
                return account
        return None

    async def get_by_id(self, account_id: str) -> Account | None:
        return self._by_id.get(account_id)
