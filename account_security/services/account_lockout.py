# account_security/services/account_lockout.py
"""
Login attempt throttling for brute force protection.

Failed attempts are counted per (client IP, normalized email) key:
- MAX_ATTEMPTS failures inside the attempt window lock the key
- the first lockout lasts INITIAL_LOCKOUT_MS, each further lockout cycle
  multiplies it by LOCKOUT_MULTIPLIER, capped at MAX_LOCKOUT_MS
- when a lockout starts the counter resets and the next window opens when the
  lock lifts; the cycle count survives until a full window passes without a
  failure, or until a successful login clears the key
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import NamedTuple

from account_security.core.config import settings
from account_security.core.keyed_store import InMemoryKeyedStore, KeyedStore, now_ms
from account_security.core.security_logger import security_log
from account_security.exceptions import LoginLocked

logger = logging.getLogger(__name__)

KEY_PREFIX = "login:"


@dataclass(frozen=True)
class LockoutConfig:
    max_attempts: int
    attempt_window_ms: int
    initial_lockout_ms: int
    max_lockout_ms: int
    lockout_multiplier: int

    @classmethod
    def from_settings(cls) -> "LockoutConfig":
        return cls(
            max_attempts=settings.LOGIN_MAX_ATTEMPTS,
            attempt_window_ms=settings.LOGIN_ATTEMPT_WINDOW_SECONDS * 1000,
            initial_lockout_ms=settings.LOGIN_INITIAL_LOCKOUT_SECONDS * 1000,
            max_lockout_ms=settings.LOGIN_MAX_LOCKOUT_SECONDS * 1000,
            lockout_multiplier=settings.LOGIN_LOCKOUT_MULTIPLIER,
        )

    def lockout_duration_ms(self, cycle: int) -> int:
        """Lockout length for the 1-based lockout cycle."""
        duration = self.initial_lockout_ms * self.lockout_multiplier ** max(0, cycle - 1)
        return min(duration, self.max_lockout_ms)


@dataclass(frozen=True)
class AttemptRecord:
    count: int
    window_start_ms: int
    locked_until_ms: int | None = None
    lockout_cycles: int = 0

    def is_locked(self, now: int) -> bool:
        return self.locked_until_ms is not None and now < self.locked_until_ms

    def window_expired(self, now: int, window_ms: int) -> bool:
        return now - self.window_start_ms > window_ms


class LoginStatus(NamedTuple):
    """Result of a lockout check."""

    allowed: bool
    remaining_attempts: int
    locked_until_ms: int | None = None
    retry_after_ms: int | None = None


class FailedAttemptResult(NamedTuple):
    """Result of recording a failed attempt."""

    remaining_attempts: int
    locked: bool
    locked_until_ms: int | None = None
    lockout_duration_ms: int | None = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def format_lockout_duration(ms: int) -> str:
    """
    User-facing lockout duration.

    Under a minute renders whole seconds, otherwise minutes rounded up:
    1000 -> "1 second", 61000 -> "2 minutes".
    """
    seconds = max(1, math.ceil(ms / 1000))
    if seconds < 60:
        return f"{seconds} second{'' if seconds == 1 else 's'}"
    minutes = math.ceil(seconds / 60)
    return f"{minutes} minute{'' if minutes == 1 else 's'}"


def login_locked_error(locked_until_ms: int, retry_after_ms: int) -> LoginLocked:
    """Build the client-facing lockout error with a readable wait time."""
    return LoginLocked(
        f"Too many failed login attempts. Please try again in {format_lockout_duration(retry_after_ms)}.",
        locked_until_ms=locked_until_ms,
        retry_after_ms=retry_after_ms,
    )


class AttemptTracker:
    """Keyed failure counter and lockout state machine."""

    def __init__(
        self,
        store: KeyedStore | None = None,
        config: LockoutConfig | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config or LockoutConfig.from_settings()
        self._clock = clock
        self._store = store if store is not None else InMemoryKeyedStore(clock=clock)

    @staticmethod
    def key(ip: str, email: str) -> str:
        """Attempt key for a client IP and email. Emails are trimmed and lower-cased."""
        # repr() quoting keeps ("a:b", "c") and ("a", "b:c") apart
        return f"{KEY_PREFIX}{ip!r}:{normalize_email(email)!r}"

    def check_login_allowed(self, key: str) -> LoginStatus:
        """Pure read of the lockout state for a key."""
        now = self._clock()
        record: AttemptRecord | None = self._store.get(key)
        max_attempts = self.config.max_attempts

        if record is None:
            return LoginStatus(allowed=True, remaining_attempts=max_attempts)

        if record.is_locked(now):
            return LoginStatus(
                allowed=False,
                remaining_attempts=0,
                locked_until_ms=record.locked_until_ms,
                retry_after_ms=record.locked_until_ms - now,
            )

        if record.window_expired(now, self.config.attempt_window_ms):
            return LoginStatus(allowed=True, remaining_attempts=max_attempts)

        remaining = max(0, max_attempts - record.count)
        return LoginStatus(allowed=remaining > 0, remaining_attempts=remaining)

    def record_failed_attempt(self, key: str, ip: str, email: str) -> FailedAttemptResult:
        """Atomically count a failure and lock the key when the limit is reached."""
        config = self.config

        def mutate(
            record: AttemptRecord | None,
        ) -> tuple[AttemptRecord, tuple[FailedAttemptResult, int]]:
            now = self._clock()

            if record is not None and record.is_locked(now):
                # Raced past the check while another request tripped the lock
                return record, (
                    FailedAttemptResult(
                        remaining_attempts=0,
                        locked=True,
                        locked_until_ms=record.locked_until_ms,
                        lockout_duration_ms=record.locked_until_ms - now,
                    ),
                    0,
                )

            if record is None or record.window_expired(now, config.attempt_window_ms):
                record = AttemptRecord(count=1, window_start_ms=now)
            else:
                record = replace(record, count=record.count + 1, locked_until_ms=None)

            if record.count >= config.max_attempts:
                cycle = record.lockout_cycles + 1
                duration = config.lockout_duration_ms(cycle)
                locked_until = now + duration
                locked = AttemptRecord(
                    count=0,
                    window_start_ms=locked_until,
                    locked_until_ms=locked_until,
                    lockout_cycles=cycle,
                )
                return locked, (
                    FailedAttemptResult(
                        remaining_attempts=0,
                        locked=True,
                        locked_until_ms=locked_until,
                        lockout_duration_ms=duration,
                    ),
                    cycle,
                )

            return record, (
                FailedAttemptResult(
                    remaining_attempts=config.max_attempts - record.count,
                    locked=False,
                ),
                0,
            )

        # window_start never lies further ahead than the longest lockout
        result, cycle = self._store.update(
            key, mutate, ttl_ms=config.attempt_window_ms + config.max_lockout_ms
        )

        if cycle:
            logger.warning(
                "Login key locked after %s failed attempts (cycle %s, %s ms)",
                config.max_attempts,
                cycle,
                result.lockout_duration_ms,
            )
            security_log.account_locked(ip, email, result.lockout_duration_ms or 0, cycle)
        return result

    def clear_login_attempts(self, key: str) -> None:
        """Reset a key after a fully successful login."""
        self._store.delete(key)

    def get_attempt_count(self, key: str) -> int:
        record: AttemptRecord | None = self._store.get(key)
        return record.count if record else 0

    def purge_expired(self) -> int:
        return self._store.purge_expired()
