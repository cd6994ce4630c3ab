# account_security/services/credential_verifier.py
"""
Password verification against the account store.

Unknown email, wrong password and inactive account all surface as the same
AuthenticationFailed, and all of them pay for one hash comparison.
"""

import logging

from starlette.concurrency import run_in_threadpool

from account_security.core.security import verify_password
from account_security.core.security_logger import security_log
from account_security.exceptions import AuthenticationFailed, FederatedAccountOnly
from account_security.services.account_lockout import (
    AttemptTracker,
    login_locked_error,
    normalize_email,
)
from account_security.services.accounts import Account, AccountStore

logger = logging.getLogger(__name__)


class CredentialVerifier:
    def __init__(self, accounts: AccountStore, attempts: AttemptTracker) -> None:
        self.accounts = accounts
        self.attempts = attempts

    async def verify(self, email: str, password: str, ip: str) -> Account:
        """
        Return the account for a correct email/password pair.

        Does not clear attempts or create a session; the caller finishes the
        login once every factor has passed.

        Raises:
            AuthenticationFailed: unknown account or wrong password.
            LoginLocked: this failure tripped the lockout.
            FederatedAccountOnly: the account has no password to compare.
        """
        normalized = normalize_email(email)
        account = await self.accounts.get_active_by_email(normalized)

        if account is not None and not account.has_password:
            logger.info(f"Password login attempted for provider-only account {account.id}")
            raise FederatedAccountOnly()

        hashed = account.hashed_password if account else None
        # verify_password compares against a dummy hash when hashed is None
        if await run_in_threadpool(verify_password, password, hashed):
            return account

        reason = "UNKNOWN_ACCOUNT" if account is None else "BAD_CREDENTIALS"
        remaining = self.record_failure(ip, normalized, reason)
        raise AuthenticationFailed(remaining_attempts=remaining)

    def record_failure(self, ip: str, email: str, reason: str) -> int:
        """Count a failed step of the login flow. Returns the remaining attempts."""
        key = AttemptTracker.key(ip, email)
        result = self.attempts.record_failed_attempt(key, ip, email)
        security_log.failed_login(ip, email, reason, result.remaining_attempts)
        if result.locked:
            locked_until = result.locked_until_ms or 0
            raise login_locked_error(locked_until, result.lockout_duration_ms or 0)
        return result.remaining_attempts

