from unittest.mock import patch

import pytest

from account_security.core.keyed_store import InMemoryKeyedStore
from account_security.core.security_logger import security_log
from account_security.exceptions import (
    CannotRevokeCurrentSession,
    SessionAlreadyRevoked,
    SessionNotFound,
)
from account_security.services.device_fingerprint import parse_user_agent
from account_security.services.session_registry import NetworkInfo, SessionRegistry
from tests.helpers import CHROME_WINDOWS_UA, SAFARI_IPHONE_UA, FakeClock

USER_ID = "user-1"


@pytest.fixture
def registry(store: InMemoryKeyedStore, clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(store=store, clock=clock)


def _create(registry: SessionRegistry, ua: str = CHROME_WINDOWS_UA, user_id: str = USER_ID):
    network = NetworkInfo(ip="203.0.113.7", country="NL", city="Amsterdam", user_agent=ua)
    return registry.create(user_id, parse_user_agent(ua), network).session


def test_create_embeds_device_and_network(registry: SessionRegistry) -> None:
    view = registry.create(
        USER_ID,
        parse_user_agent(SAFARI_IPHONE_UA),
        NetworkInfo(ip="203.0.113.7", country="NL", city="Amsterdam", user_agent=SAFARI_IPHONE_UA),
    )

    session = view.session
    assert view.is_current is True
    assert session.device_type == "mobile"
    assert session.browser == "Safari"
    assert session.os == "iOS"
    assert session.ip == "203.0.113.7"
    assert session.country == "NL"
    assert session.city == "Amsterdam"
    assert session.revoked_at is None
    assert session.expires_at - session.created_at == registry.duration


def test_list_marks_current_session(registry: SessionRegistry) -> None:
    first = _create(registry)
    second = _create(registry, SAFARI_IPHONE_UA)

    views = registry.list_sessions(USER_ID, current_session_id=second.id)

    flags = {v.session.id: v.is_current for v in views}
    assert flags == {first.id: False, second.id: True}


def test_list_orders_by_last_activity(registry: SessionRegistry, clock: FakeClock) -> None:
    older = _create(registry)
    clock.advance(minutes=1)
    newer = _create(registry)
    clock.advance(minutes=10)

    registry.touch(older.id)

    assert [v.session.id for v in registry.list_sessions(USER_ID)] == [older.id, newer.id]


def test_list_is_per_user(registry: SessionRegistry) -> None:
    _create(registry, user_id="someone-else")

    assert registry.list_sessions(USER_ID) == []


def test_revoked_session_disappears_from_list(registry: SessionRegistry) -> None:
    current = _create(registry)
    other = _create(registry)

    with patch.object(security_log, "session_revoked") as mock_revoked:
        registry.revoke(USER_ID, other.id, current_session_id=current.id)

    mock_revoked.assert_called_once_with(USER_ID, other.id, "user_revoked")
    assert [v.session.id for v in registry.list_sessions(USER_ID, current.id)] == [current.id]
    assert registry.validate(other.id) is None
    assert registry.active_count(USER_ID) == 1


def test_revoke_current_session_refused(registry: SessionRegistry) -> None:
    current = _create(registry)

    with pytest.raises(CannotRevokeCurrentSession):
        registry.revoke(USER_ID, current.id, current_session_id=current.id)

    assert registry.validate(current.id) is not None


def test_revoke_unknown_session(registry: SessionRegistry) -> None:
    with pytest.raises(SessionNotFound):
        registry.revoke(USER_ID, "does-not-exist")


def test_revoke_other_users_session_is_not_found(registry: SessionRegistry) -> None:
    foreign = _create(registry, user_id="someone-else")

    with pytest.raises(SessionNotFound):
        registry.revoke(USER_ID, foreign.id)

    assert registry.validate(foreign.id) is not None


def test_revoke_twice(registry: SessionRegistry) -> None:
    other = _create(registry)
    registry.revoke(USER_ID, other.id)

    with pytest.raises(SessionAlreadyRevoked):
        registry.revoke(USER_ID, other.id)


def test_revoke_all_others_keeps_current(registry: SessionRegistry) -> None:
    current = _create(registry)
    for _ in range(3):
        _create(registry)

    count = registry.revoke_all_others(USER_ID, current.id)

    assert count == 3
    views = registry.list_sessions(USER_ID, current.id)
    assert [v.session.id for v in views] == [current.id]
    assert views[0].is_current is True
    assert registry.revoke_all_others(USER_ID, current.id) == 0


def test_revoke_all(registry: SessionRegistry) -> None:
    for _ in range(2):
        _create(registry)

    assert registry.revoke_all(USER_ID) == 2
    assert registry.active_count(USER_ID) == 0


def test_touch_is_throttled(registry: SessionRegistry, clock: FakeClock) -> None:
    session = _create(registry)

    clock.advance(minutes=4)
    assert registry.touch(session.id) is False
    assert registry.get(session.id).last_active_at == session.last_active_at

    clock.advance(minutes=1)
    assert registry.touch(session.id) is True
    assert registry.get(session.id).last_active_at > session.last_active_at


def test_touch_unknown_session(registry: SessionRegistry) -> None:
    assert registry.touch("missing") is False


def test_expired_session_is_not_valid(registry: SessionRegistry, clock: FakeClock) -> None:
    session = _create(registry)

    clock.advance(days=30)

    assert registry.validate(session.id) is None
    assert registry.list_sessions(USER_ID) == []


def test_cleanup_expired(registry: SessionRegistry, clock: FakeClock) -> None:
    old = _create(registry)
    revoked = _create(registry)
    registry.revoke(USER_ID, revoked.id)
    clock.advance(days=20)
    fresh = _create(registry)
    clock.advance(days=11)

    removed = registry.cleanup_expired()

    # old and revoked expired at day 30, fresh is still alive
    assert removed == 2
    assert registry.get(old.id) is None
    assert registry.get(revoked.id) is None
    assert registry.validate(fresh.id) is not None
