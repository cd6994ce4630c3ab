import threading

from account_security.core.keyed_store import InMemoryKeyedStore
from tests.helpers import FakeClock


def test_update_creates_and_returns_result() -> None:
    store = InMemoryKeyedStore(clock=FakeClock())

    result = store.update("k", lambda current: ((current or 0) + 1, "created"))

    assert result == "created"
    assert store.get("k") == 1


def test_update_to_none_deletes_key() -> None:
    store = InMemoryKeyedStore(clock=FakeClock())
    store.update("k", lambda _: ("v", None))

    store.update("k", lambda _: (None, None))

    assert store.get("k") is None
    assert store.keys() == []


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    store = InMemoryKeyedStore(clock=clock)
    store.update("k", lambda _: ("v", None), ttl_ms=1000)

    clock.advance(999)
    assert store.get("k") == "v"

    clock.advance(1)
    assert store.get("k") is None
    assert store.purge_expired() == 1


def test_returning_current_value_keeps_expiry() -> None:
    clock = FakeClock()
    store = InMemoryKeyedStore(clock=clock)
    store.update("k", lambda _: ("v", None), ttl_ms=1000)

    # No TTL on this call, but the unchanged value keeps its original expiry
    store.update("k", lambda current: (current, None))
    clock.advance(1000)

    assert store.get("k") is None


def test_mutate_sees_none_for_expired_entry() -> None:
    clock = FakeClock()
    store = InMemoryKeyedStore(clock=clock)
    store.update("k", lambda _: ("old", None), ttl_ms=10)
    clock.advance(10)

    seen = store.update("k", lambda current: ("new", current))

    assert seen is None
    assert store.get("k") == "new"


def test_mutate_exception_leaves_value_untouched() -> None:
    store = InMemoryKeyedStore(clock=FakeClock())
    store.update("k", lambda _: ("v", None))

    def boom(_current):
        raise RuntimeError("fail")

    try:
        store.update("k", boom)
    except RuntimeError:
        pass

    assert store.get("k") == "v"


def test_keys_filters_by_prefix() -> None:
    store = InMemoryKeyedStore(clock=FakeClock())
    for key in ("login:a", "login:b", "sessions:x"):
        store.update(key, lambda _: (1, None))

    assert sorted(store.keys("login:")) == ["login:a", "login:b"]


def test_concurrent_updates_are_not_lost() -> None:
    store = InMemoryKeyedStore()
    per_thread = 200

    def worker() -> None:
        for _ in range(per_thread):
            store.update("counter", lambda current: ((current or 0) + 1, None))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.get("counter") == 8 * per_thread
