from typing import Any


class AccountSecurityError(Exception):
    """Base exception for every error raised by the account security services."""

    code = "ACCOUNT_SECURITY_ERROR"
    status_code = 400
    message = "Request could not be completed."

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.message
        self.details = {key: value for key, value in details.items() if value is not None}
        super().__init__(self.message)

    def public_details(self) -> dict[str, Any] | None:
        """Details that are safe to hand to the client."""
        return self.details or None


class AuthenticationFailed(AccountSecurityError):
    """Wrong email or password. Never says which."""

    code = "INVALID_CREDENTIALS"
    status_code = 401
    message = "Invalid email or password"

    def __init__(self, remaining_attempts: int) -> None:
        super().__init__(remainingAttempts=remaining_attempts)
        self.remaining_attempts = remaining_attempts


class FederatedAccountOnly(AccountSecurityError):
    """Account has no password and must use its linked sign-in provider."""

    code = "FEDERATED_ACCOUNT"
    status_code = 400
    message = "This account uses a linked sign-in provider. Please sign in with that provider."


class LoginLocked(AccountSecurityError):
    """Too many failed attempts for this (ip, email) key."""

    code = "ACCOUNT_LOCKED"
    status_code = 429

    def __init__(self, message: str, locked_until_ms: int, retry_after_ms: int) -> None:
        super().__init__(
            message,
            remainingAttempts=0,
            lockedUntilMs=locked_until_ms,
            retryAfterMs=retry_after_ms,
        )
        self.locked_until_ms = locked_until_ms
        self.retry_after_ms = retry_after_ms


class TwoFactorRequired(AccountSecurityError):
    """Credentials were valid but a second factor must be supplied. A flow branch, not a failure."""

    code = "TWO_FACTOR_REQUIRED"
    status_code = 200
    message = "Two-factor authentication required"


class InvalidTotpCode(AccountSecurityError):
    """A 6-digit code did not match, or was replayed."""

    code = "INVALID_2FA_CODE"
    message = "Invalid two-factor authentication code"


class InvalidBackupCode(AccountSecurityError):
    """A backup code did not match an unused backup code."""

    code = "INVALID_2FA_CODE"
    message = "Invalid two-factor authentication code"


class InvalidTwoFactorCode(AccountSecurityError):
    """Public form of InvalidTotpCode / InvalidBackupCode raised by the login flow."""

    code = "INVALID_2FA_CODE"
    status_code = 401
    message = "Invalid two-factor authentication code"

    def __init__(self, remaining_attempts: int) -> None:
        super().__init__(requires2FA=True, remainingAttempts=remaining_attempts)
        self.remaining_attempts = remaining_attempts


class TwoFactorAlreadyEnabled(AccountSecurityError):
    code = "ALREADY_ENABLED"
    message = "2FA is already enabled"


class TwoFactorNotEnabled(AccountSecurityError):
    code = "NOT_ENABLED"
    message = "2FA is not enabled"


class TwoFactorSetupExpired(AccountSecurityError):
    """No pending setup, or the pending setup timed out."""

    code = "SETUP_EXPIRED"
    message = "Setup expired. Please start again."


class SessionNotFound(AccountSecurityError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Session not found"


class SessionAlreadyRevoked(AccountSecurityError):
    code = "ALREADY_REVOKED"
    message = "Session already revoked"


class CannotRevokeCurrentSession(AccountSecurityError):
    code = "CANNOT_REVOKE_CURRENT"
    message = "Cannot revoke current session. Use logout instead."


class NotAuthenticated(AccountSecurityError):
    code = "UNAUTHORIZED"
    status_code = 401
    message = "Please sign in."


class InvalidRequest(AccountSecurityError):
    code = "BAD_REQUEST"
    message = "Invalid request"


class RateLimited(AccountSecurityError):
    code = "RATE_LIMITED"
    status_code = 429
    message = "Too many requests. Please slow down."
