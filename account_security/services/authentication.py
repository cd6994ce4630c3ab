# account_security/services/authentication.py
"""
Login orchestration.

lockout check -> password -> second factor (when enabled) -> clear attempts
-> session. A session is only created once every required step has passed,
and no step is reachable without passing the lockout check first.
"""

import logging
from dataclasses import dataclass

from account_security.core.security_logger import security_log
from account_security.exceptions import (
    InvalidBackupCode,
    InvalidTotpCode,
    InvalidTwoFactorCode,
    TwoFactorRequired,
)
from account_security.services.account_lockout import (
    AttemptTracker,
    login_locked_error,
    normalize_email,
)
from account_security.services.accounts import Account
from account_security.services.credential_verifier import CredentialVerifier
from account_security.services.device_fingerprint import parse_user_agent
from account_security.services.mfa_service import TotpEngine
from account_security.services.session_registry import NetworkInfo, SessionRegistry, SessionView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    account: Account
    session: SessionView
    used_backup_code: bool = False


class AuthenticationCoordinator:
    def __init__(
        self,
        attempts: AttemptTracker,
        credentials: CredentialVerifier,
        totp: TotpEngine,
        sessions: SessionRegistry,
    ) -> None:
        self.attempts = attempts
        self.credentials = credentials
        self.totp = totp
        self.sessions = sessions

    async def login(
        self,
        email: str,
        password: str,
        two_factor_code: str | None,
        network: NetworkInfo,
    ) -> LoginResult:
        """
        Run the full login flow for one request.

        Raises:
            LoginLocked: the (ip, email) key is locked, or this attempt locked it.
            AuthenticationFailed: wrong email or password.
            FederatedAccountOnly: the account has no password.
            TwoFactorRequired: credentials valid, code needed.
            InvalidTwoFactorCode: credentials valid, code wrong.
        """
        ip = network.ip
        normalized = normalize_email(email)
        key = AttemptTracker.key(ip, normalized)

        status = self.attempts.check_login_allowed(key)
        if not status.allowed:
            security_log.login_blocked(ip, normalized, status.retry_after_ms or 0)
            raise login_locked_error(status.locked_until_ms or 0, status.retry_after_ms or 0)

        account = await self.credentials.verify(normalized, password, ip)

        method = "password"
        used_backup_code = False
        if self.totp.is_enabled(account.id):
            if not two_factor_code:
                logger.debug(f"Second factor required for user {account.id}")
                raise TwoFactorRequired()
            try:
                verification = self.totp.verify(account.id, two_factor_code, ip=ip)
            except (InvalidTotpCode, InvalidBackupCode):
                remaining = self.credentials.record_failure(ip, normalized, "BAD_2FA_CODE")
                raise InvalidTwoFactorCode(remaining_attempts=remaining) from None
            used_backup_code = verification.method == "backup_code"
            method = f"password+{verification.method}"

        self.attempts.clear_login_attempts(key)
        session = self.sessions.create(
            account.id, parse_user_agent(network.user_agent), network
        )
        security_log.login_success(ip, account.id, method)
        return LoginResult(account=account, session=session, used_backup_code=used_backup_code)
