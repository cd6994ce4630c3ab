# account_security/services/mfa_service.py
"""
Two-factor authentication using TOTP.

Per-user state is a tagged variant held in the keyed store under ``2fa:{user_id}``:

- absent: 2FA is off (Unset)
- PendingTwoFactor: setup issued a secret that has not been confirmed yet
- EnabledTwoFactor: confirmed secret, backup code hashes, last accepted time-step

Secrets are stored Fernet-encrypted and backup codes only as SHA-256 hashes;
plaintext backup codes leave this module exactly once, from ``setup`` or
``regenerate_backup_codes``.
"""

import base64
import hashlib
import hmac
import io
import logging
import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Literal

import pyotp
import qrcode

from account_security.core.config import settings
from account_security.core.keyed_store import InMemoryKeyedStore, KeyedStore, now_ms
from account_security.core.security import decrypt_value, encrypt_value
from account_security.core.security_logger import security_log
from account_security.exceptions import (
    InvalidBackupCode,
    InvalidTotpCode,
    TwoFactorAlreadyEnabled,
    TwoFactorNotEnabled,
    TwoFactorSetupExpired,
)

logger = logging.getLogger(__name__)

KEY_PREFIX = "2fa:"
BACKUP_CODE_LENGTH = 8
# No 0/O or 1/I so codes survive being read aloud or written down
BACKUP_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

_TOTP_CODE = re.compile(r"^[0-9]{6}$")
_BACKUP_CODE = re.compile(rf"^[A-Z0-9]{{{BACKUP_CODE_LENGTH}}}$")
_SEPARATORS = re.compile(r"[\s-]+")


@dataclass(frozen=True)
class PendingTwoFactor:
    secret_encrypted: str
    backup_code_hashes: tuple[str, ...]
    expires_at_ms: int


@dataclass(frozen=True)
class EnabledTwoFactor:
    secret_encrypted: str
    backup_code_hashes: tuple[str, ...]
    last_used_step: int | None = None


TwoFactorState = PendingTwoFactor | EnabledTwoFactor | None


@dataclass(frozen=True)
class TwoFactorSetup:
    secret: str
    otpauth_uri: str
    qr_code: str
    backup_codes: list[str]


@dataclass(frozen=True)
class TwoFactorStatus:
    enabled: bool
    backup_codes_count: int


@dataclass(frozen=True)
class VerificationResult:
    method: Literal["totp", "backup_code"]
    backup_codes_remaining: int


def generate_totp_secret() -> str:
    """Generate a new TOTP secret."""
    return pyotp.random_base32()


def get_totp_uri(secret: str, email: str) -> str:
    """Generate the TOTP provisioning URI for QR code."""
    totp = pyotp.TOTP(secret)
    return totp.provisioning_uri(name=email, issuer_name=settings.totp_issuer)


def generate_qr_code_base64(uri: str) -> str:
    """Generate a QR code as base64 PNG for the given URI."""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)

    return base64.b64encode(buffer.read()).decode("utf-8")


def normalize_code(code: str) -> str:
    """Uppercase and drop spaces and dashes, so "abcd-2345" matches "ABCD2345"."""
    return _SEPARATORS.sub("", code).upper()


def generate_backup_codes(count: int | None = None) -> list[str]:
    """Generate single-use recovery codes formatted as XXXX-XXXX."""
    codes = []
    for _ in range(count or settings.BACKUP_CODE_COUNT):
        raw = "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(BACKUP_CODE_LENGTH))
        codes.append(f"{raw[:4]}-{raw[4:]}")
    return codes


def hash_backup_code(code: str) -> str:
    """Hash a backup code for storage."""
    return hashlib.sha256(normalize_code(code).encode()).hexdigest()


class TotpEngine:
    """TOTP secret lifecycle, code verification and backup codes."""

    def __init__(
        self,
        store: KeyedStore | None = None,
        clock: Callable[[], int] = now_ms,
        valid_window: int | None = None,
    ) -> None:
        self._clock = clock
        self._store = store if store is not None else InMemoryKeyedStore(clock=clock)
        self.valid_window = settings.TOTP_VALID_WINDOW if valid_window is None else valid_window

    @staticmethod
    def key(user_id: str) -> str:
        return f"{KEY_PREFIX}{user_id}"

    def _state(self, user_id: str) -> TwoFactorState:
        return self._store.get(self.key(user_id))

    def _match_totp(
        self, secret: str, code: str, *, after_step: int | None = None
    ) -> int | None:
        """
        Time-step the code was generated for, or None.

        Only steps within ``valid_window`` of now and strictly after
        ``after_step`` are considered.
        """
        totp = pyotp.TOTP(secret)
        current = (self._clock() // 1000) // totp.interval
        for offset in range(-self.valid_window, self.valid_window + 1):
            step = current + offset
            if after_step is not None and step <= after_step:
                continue
            if hmac.compare_digest(totp.generate_otp(step), code):
                return step
        return None

    # --- Lifecycle ---

    def setup(self, user_id: str, email: str) -> TwoFactorSetup:
        """
        Start 2FA setup, replacing any earlier pending setup.

        Returns the secret, provisioning URI, QR code and plaintext backup codes.
        The backup codes are not retrievable again.
        """
        secret = generate_totp_secret()
        backup_codes = generate_backup_codes()
        ttl_ms = settings.TWO_FACTOR_SETUP_TTL_SECONDS * 1000

        def mutate(current: TwoFactorState) -> tuple[TwoFactorState, bool]:
            if isinstance(current, EnabledTwoFactor):
                return current, False
            pending = PendingTwoFactor(
                secret_encrypted=encrypt_value(secret),
                backup_code_hashes=tuple(hash_backup_code(c) for c in backup_codes),
                expires_at_ms=self._clock() + ttl_ms,
            )
            return pending, True

        if not self._store.update(self.key(user_id), mutate, ttl_ms=ttl_ms):
            raise TwoFactorAlreadyEnabled()

        uri = get_totp_uri(secret, email)
        logger.info(f"2FA setup initiated for user {user_id}")
        return TwoFactorSetup(
            secret=secret,
            otpauth_uri=uri,
            qr_code=f"data:image/png;base64,{generate_qr_code_base64(uri)}",
            backup_codes=backup_codes,
        )

    def enable(self, user_id: str, code: str) -> None:
        """Confirm a pending setup with a code from the authenticator app."""
        code = normalize_code(code)

        def mutate(current: TwoFactorState) -> tuple[TwoFactorState, Exception | None]:
            if isinstance(current, EnabledTwoFactor):
                return current, TwoFactorAlreadyEnabled()
            if current is None or current.expires_at_ms <= self._clock():
                return None, TwoFactorSetupExpired()
            if not _TOTP_CODE.match(code):
                return current, InvalidTotpCode()
            step = self._match_totp(decrypt_value(current.secret_encrypted), code)
            if step is None:
                return current, InvalidTotpCode()
            enabled = EnabledTwoFactor(
                secret_encrypted=current.secret_encrypted,
                backup_code_hashes=current.backup_code_hashes,
                last_used_step=step,
            )
            return enabled, None

        error = self._store.update(self.key(user_id), mutate)
        if error is not None:
            logger.warning(f"2FA enable rejected for user {user_id}: {error.code}")
            raise error

        security_log.two_factor_changed(user_id, "enabled")
        logger.info(f"2FA enabled for user {user_id}")

    def verify(self, user_id: str, code: str, ip: str = "unknown") -> VerificationResult:
        """
        Check a TOTP or backup code for an enabled user.

        An accepted TOTP code moves the replay floor to its time-step; an
        accepted backup code is removed.

        Raises:
            TwoFactorNotEnabled: 2FA is off for the user.
            InvalidTotpCode: 6-digit code wrong, stale or replayed.
            InvalidBackupCode: no unused backup code matches.
        """
        normalized = normalize_code(code)

        def mutate(
            current: TwoFactorState,
        ) -> tuple[TwoFactorState, VerificationResult | Exception]:
            if not isinstance(current, EnabledTwoFactor):
                return current, TwoFactorNotEnabled()

            if _TOTP_CODE.match(normalized):
                step = self._match_totp(
                    decrypt_value(current.secret_encrypted),
                    normalized,
                    after_step=current.last_used_step,
                )
                if step is None:
                    return current, InvalidTotpCode()
                result = VerificationResult("totp", len(current.backup_code_hashes))
                return replace(current, last_used_step=step), result

            if _BACKUP_CODE.match(normalized):
                candidate = hash_backup_code(normalized)
                remaining = tuple(
                    h for h in current.backup_code_hashes if not hmac.compare_digest(h, candidate)
                )
                if len(remaining) < len(current.backup_code_hashes):
                    result = VerificationResult("backup_code", len(remaining))
                    return replace(current, backup_code_hashes=remaining), result

            return current, InvalidBackupCode()

        outcome = self._store.update(self.key(user_id), mutate)
        if isinstance(outcome, TwoFactorNotEnabled):
            raise outcome
        if isinstance(outcome, Exception):
            security_log.mfa_failed(ip, user_id)
            raise outcome

        if outcome.method == "backup_code":
            security_log.backup_code_used(user_id, outcome.backup_codes_remaining)
            if outcome.backup_codes_remaining == 0:
                logger.warning(f"User {user_id} has used their last backup code")
        return outcome

    def disable(self, user_id: str, code: str, ip: str = "unknown") -> None:
        """Turn 2FA off after a fresh successful verification."""
        self.verify(user_id, code, ip=ip)
        self._store.delete(self.key(user_id))
        security_log.two_factor_changed(user_id, "disabled")
        logger.info(f"2FA disabled for user {user_id}")

    def regenerate_backup_codes(self, user_id: str, code: str, ip: str = "unknown") -> list[str]:
        """Replace every backup code after a fresh verification. Returns the new plaintext set."""
        self.verify(user_id, code, ip=ip)
        backup_codes = generate_backup_codes()
        hashes = tuple(hash_backup_code(c) for c in backup_codes)

        def mutate(current: TwoFactorState) -> tuple[TwoFactorState, bool]:
            if not isinstance(current, EnabledTwoFactor):
                return current, False
            return replace(current, backup_code_hashes=hashes), True

        if not self._store.update(self.key(user_id), mutate):
            # Disabled concurrently between the verify and the write
            raise TwoFactorNotEnabled()

        security_log.two_factor_changed(user_id, "backup_codes_regenerated")
        return backup_codes

    # --- Queries ---

    def is_enabled(self, user_id: str) -> bool:
        return isinstance(self._state(user_id), EnabledTwoFactor)

    def status(self, user_id: str) -> TwoFactorStatus:
        state = self._state(user_id)
        if isinstance(state, EnabledTwoFactor):
            return TwoFactorStatus(enabled=True, backup_codes_count=len(state.backup_code_hashes))
        return TwoFactorStatus(enabled=False, backup_codes_count=0)
