# account_security/services/session_registry.py
"""
Per-device login sessions.

Each login creates one session record describing the device and network it
came from. Records are grouped per user under ``sessions:{user_id}`` so that a
user's list and revoke operations are serialised on one key; a small
``session:{id}`` index maps a session id back to its user for token checks.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta

from account_security.core.config import settings
from account_security.core.keyed_store import InMemoryKeyedStore, KeyedStore, now_ms
from account_security.core.security_logger import security_log
from account_security.exceptions import (
    CannotRevokeCurrentSession,
    SessionAlreadyRevoked,
    SessionNotFound,
)
from account_security.services.device_fingerprint import DeviceFingerprint

logger = logging.getLogger(__name__)

SESSIONS_PREFIX = "sessions:"
INDEX_PREFIX = "session:"

UserSessions = dict[str, "Session"]


@dataclass(frozen=True)
class NetworkInfo:
    ip: str = "unknown"
    country: str | None = None
    city: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class Session:
    id: str
    user_id: str
    device_type: str
    browser: str
    os: str
    ip: str
    country: str | None
    city: str | None
    user_agent: str | None
    created_at: datetime
    last_active_at: datetime
    expires_at: datetime
    revoked_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return self.revoked_at is None and now < self.expires_at


@dataclass(frozen=True)
class SessionView:
    """A session as seen by one caller. ``is_current`` is never stored."""

    session: Session
    is_current: bool


class SessionRegistry:
    def __init__(
        self,
        store: KeyedStore | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._clock = clock
        self._store = store if store is not None else InMemoryKeyedStore(clock=clock)
        self.duration = timedelta(days=settings.SESSION_DURATION_DAYS)
        self.activity_interval = timedelta(seconds=settings.SESSION_ACTIVITY_UPDATE_SECONDS)

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock() / 1000, UTC)

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"{SESSIONS_PREFIX}{user_id}"

    @staticmethod
    def _index_key(session_id: str) -> str:
        return f"{INDEX_PREFIX}{session_id}"

    def _sessions(self, user_id: str) -> UserSessions:
        return self._store.get(self._user_key(user_id)) or {}

    def create(
        self, user_id: str, fingerprint: DeviceFingerprint, network: NetworkInfo
    ) -> SessionView:
        """Record a new session for a successful login."""
        now = self._now()
        session = Session(
            id=str(uuid.uuid4()),
            user_id=user_id,
            device_type=fingerprint.device_type,
            browser=fingerprint.browser,
            os=fingerprint.os,
            ip=network.ip,
            country=network.country,
            city=network.city,
            user_agent=network.user_agent,
            created_at=now,
            last_active_at=now,
            expires_at=now + self.duration,
        )

        # Index first: a bucket entry without an index is invisible to validate()
        self._store.update(self._index_key(session.id), lambda _: (user_id, None))
        self._store.update(
            self._user_key(user_id),
            lambda current: ({**(current or {}), session.id: session}, None),
        )
        logger.info(f"Session {session.id} created for user {user_id}")
        return SessionView(session=session, is_current=True)

    def get(self, session_id: str) -> Session | None:
        user_id = self._store.get(self._index_key(session_id))
        if user_id is None:
            return None
        return self._sessions(user_id).get(session_id)

    def validate(self, session_id: str) -> Session | None:
        """Return the session if it is still active, recording activity on it."""
        session = self.get(session_id)
        if session is None or not session.is_active(self._now()):
            return None
        self.touch(session_id)
        return session

    def touch(self, session_id: str) -> bool:
        """Best-effort last-activity update, throttled to one write per interval."""
        user_id = self._store.get(self._index_key(session_id))
        if user_id is None:
            return False
        now = self._now()

        def mutate(current: UserSessions | None) -> tuple[UserSessions | None, bool]:
            session = (current or {}).get(session_id)
            if session is None or not session.is_active(now):
                return current, False
            if now - session.last_active_at < self.activity_interval:
                return current, False
            return {**current, session_id: replace(session, last_active_at=now)}, True

        return self._store.update(self._user_key(user_id), mutate)

    def list_sessions(self, user_id: str, current_session_id: str | None = None) -> list[SessionView]:
        """Active sessions, most recently used first."""
        now = self._now()
        active = [s for s in self._sessions(user_id).values() if s.is_active(now)]
        active.sort(key=lambda s: s.last_active_at, reverse=True)
        return [SessionView(session=s, is_current=s.id == current_session_id) for s in active]

    def active_count(self, user_id: str) -> int:
        now = self._now()
        return sum(1 for s in self._sessions(user_id).values() if s.is_active(now))

    def revoke(
        self,
        user_id: str,
        session_id: str,
        current_session_id: str | None = None,
        reason: str = "user_revoked",
    ) -> Session:
        """
        Revoke one of the user's sessions.

        Raises:
            CannotRevokeCurrentSession: ``session_id`` is the caller's own session.
            SessionNotFound: no such session for this user.
            SessionAlreadyRevoked: the session was revoked before.
        """
        if current_session_id is not None and session_id == current_session_id:
            raise CannotRevokeCurrentSession()
        now = self._now()

        def mutate(current: UserSessions | None) -> tuple[UserSessions | None, Session | Exception]:
            session = (current or {}).get(session_id)
            if session is None:
                return current, SessionNotFound()
            if session.revoked_at is not None:
                return current, SessionAlreadyRevoked()
            revoked = replace(session, revoked_at=now)
            return {**current, session_id: revoked}, revoked

        outcome = self._store.update(self._user_key(user_id), mutate)
        if isinstance(outcome, Exception):
            raise outcome
        security_log.session_revoked(user_id, session_id, reason)
        return outcome

    def _revoke_where(
        self, user_id: str, keep: Callable[[Session], bool], reason: str
    ) -> list[str]:
        now = self._now()

        def mutate(current: UserSessions | None) -> tuple[UserSessions | None, list[str]]:
            targets = [
                s.id for s in (current or {}).values() if s.revoked_at is None and not keep(s)
            ]
            if not targets:
                return current, []
            updated = dict(current)
            for sid in targets:
                updated[sid] = replace(updated[sid], revoked_at=now)
            return updated, targets

        revoked = self._store.update(self._user_key(user_id), mutate)
        for sid in revoked:
            security_log.session_revoked(user_id, sid, reason)
        return revoked

    def revoke_all_others(self, user_id: str, except_session_id: str) -> int:
        """Revoke every session but the caller's. Returns how many were revoked."""
        revoked = self._revoke_where(
            user_id, lambda s: s.id == except_session_id, "revoke_all_others"
        )
        return len(revoked)

    def revoke_all(self, user_id: str, reason: str = "revoke_all") -> int:
        """Revoke every session of the user, e.g. after a password change."""
        return len(self._revoke_where(user_id, lambda s: False, reason))

    def cleanup_expired(self) -> int:
        """Drop expired sessions and sessions revoked longer ago than the session lifetime."""
        now = self._now()
        removed: list[str] = []

        def mutate(current: UserSessions | None) -> tuple[UserSessions | None, list[str]]:
            if not current:
                return None, []
            stale = [
                s.id
                for s in current.values()
                if now >= s.expires_at
                or (s.revoked_at is not None and now - s.revoked_at > self.duration)
            ]
            if not stale:
                return current, []
            kept = {sid: s for sid, s in current.items() if sid not in stale}
            return kept or None, stale

        for key in self._store.keys(SESSIONS_PREFIX):
            removed.extend(self._store.update(key, mutate))

        for sid in removed:
            self._store.delete(self._index_key(sid))

        if removed:
            logger.info(f"Cleaned up {len(removed)} expired sessions")
        return len(removed)
