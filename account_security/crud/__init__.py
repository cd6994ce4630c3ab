# account_security/crud/__init__.py
"""
Persistence adapters for the account store.
"""

from .crud_user import SqlAlchemyAccountStore

__all__ = ["SqlAlchemyAccountStore"]
