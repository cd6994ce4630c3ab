# account_security/core/security_logger.py
"""
Dedicated security logger for fail2ban integration.

Writes security events in a format that fail2ban can parse. Includes log
injection safeguards and email masking. When SECURITY_LOG_PATH is configured
events also go to a rotating file; otherwise they propagate to the root logger.
"""

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

from account_security.core.config import settings


def sanitize(value: object | None, max_length: int = 255) -> str:
    """
    Sanitize user input to prevent log injection attacks.

    Removes characters that could break log parsing or inject fake entries.

    Args:
        value: The value to sanitize
        max_length: Maximum length of the output

    Returns:
        Sanitized string safe for logging
    """
    if value is None or value == "":
        return "unknown"

    value = str(value).strip()

    # Newlines, brackets and control characters could forge entries
    value = re.sub(r"[\n\r\[\]<>\x00-\x1f\x7f-\x9f]", "", value)

    return value[:max_length]


def mask_email(email: str | None) -> str:
    """
    Mask an email for privacy while keeping it recognisable.

    Keeps the first 2 chars of the local part and the domain: ``jo***@example.com``.
    """
    if not email or "@" not in email:
        return sanitize(email)

    local, domain = email.rsplit("@", 1)
    masked_local = (local[:2] if len(local) > 2 else local[:1]) + "***"
    return f"{sanitize(masked_local)}@{sanitize(domain)}"


class SecurityLogger:
    """
    Thread-safe security event logger.

    Log format compatible with fail2ban datepattern:
        2026-01-05 10:15:30 SECURITY [EVENT_TYPE] ip=x.x.x.x field=value ...

    All user-controlled fields are sanitized to prevent log injection.
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if SecurityLogger._initialized:
            return

        self.logger = logging.getLogger("security")
        self.logger.setLevel(logging.INFO)

        if settings.SECURITY_LOG_PATH:
            log_path = Path(settings.SECURITY_LOG_PATH)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            # Rotating file handler: 50MB max, keep 10 backups
            handler = RotatingFileHandler(
                str(log_path),
                maxBytes=50 * 1024 * 1024,
                backupCount=10,
            )
            # The message itself carries "EVENT_TYPE] ip=... fields..."
            handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s SECURITY [%(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            self.logger.addHandler(handler)
            self.logger.propagate = False

        SecurityLogger._initialized = True

    def failed_login(self, ip: str, email: str, reason: str, remaining_attempts: int) -> None:
        """
        Log a failed login attempt.

        Args:
            ip: Client IP address
            email: Email that was attempted
            reason: BAD_CREDENTIALS, UNKNOWN_ACCOUNT, BAD_2FA_CODE
            remaining_attempts: Attempts left before a lockout
        """
        self.logger.info(
            f"FAILED_LOGIN] ip={sanitize(ip)} email={mask_email(email)} "
            f"reason={sanitize(reason)} remaining={remaining_attempts}"
        )

    def account_locked(self, ip: str, email: str, lockout_ms: int, cycle: int) -> None:
        """Log a lockout transition for an (ip, email) key."""
        self.logger.warning(
            f"ACCOUNT_LOCKED] ip={sanitize(ip)} email={mask_email(email)} "
            f"duration_ms={lockout_ms} cycle={cycle}"
        )

    def login_blocked(self, ip: str, email: str, retry_after_ms: int) -> None:
        """Log a login refused because the key is still locked."""
        self.logger.info(
            f"LOGIN_BLOCKED] ip={sanitize(ip)} email={mask_email(email)} "
            f"retry_after_ms={retry_after_ms}"
        )

    def login_success(self, ip: str, user_id: str, method: str = "password") -> None:
        """
        Log a successful login (for audit trail, not for banning).

        Args:
            ip: Client IP address
            user_id: ID of the authenticated account
            method: password, password+totp, password+backup_code
        """
        self.logger.info(
            f"LOGIN_SUCCESS] ip={sanitize(ip)} user_id={sanitize(user_id)} method={sanitize(method)}"
        )

    def mfa_failed(self, ip: str, user_id: str) -> None:
        """Log a failed 2FA code (user id, not email, for privacy)."""
        self.logger.info(f"MFA_FAILED] ip={sanitize(ip)} user_id={sanitize(user_id)}")

    def backup_code_used(self, user_id: str, remaining: int) -> None:
        """Log consumption of a backup code."""
        self.logger.warning(
            f"BACKUP_CODE_USED] user_id={sanitize(user_id)} remaining={remaining}"
        )

    def two_factor_changed(self, user_id: str, action: str) -> None:
        """Log a 2FA lifecycle change (enabled, disabled, backup_codes_regenerated)."""
        self.logger.info(f"MFA_CHANGED] user_id={sanitize(user_id)} action={sanitize(action)}")

    def session_revoked(self, user_id: str, session_id: str, reason: str) -> None:
        """Log a revoked session."""
        self.logger.info(
            f"SESSION_REVOKED] user_id={sanitize(user_id)} session_id={sanitize(session_id)} "
            f"reason={sanitize(reason)}"
        )

    def rate_limited(self, ip: str, endpoint: str) -> None:
        """Log a rate limit violation."""
        self.logger.info(
            f"RATE_LIMIT] ip={sanitize(ip)} endpoint={sanitize(endpoint, max_length=100)}"
        )

    def bad_token(self, ip: str, reason: str) -> None:
        """Log a rejected token (malformed, bad signature, expired, revoked session)."""
        self.logger.info(f"BAD_TOKEN] ip={sanitize(ip)} reason={sanitize(reason)}")


# Singleton instance for easy import
security_log = SecurityLogger()
