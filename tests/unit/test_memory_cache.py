"""TTL cache tests"""

from eatwhat.services.memory_cache import TTLCache


def test_entries_expire_lazily_on_read():
    now = [0.0]
    cache = TTLCache(10, clock=lambda: now[0])
    cache.set("k", "v")

    now[0] = 9.5
    assert cache.get("k") == "v"

    now[0] = 10.5
    assert len(cache) == 1
    assert cache.get("k") is None
    assert len(cache) == 0


def test_set_upserts_and_refreshes_ttl():
    now = [0.0]
    cache = TTLCache(10, clock=lambda: now[0])
    cache.set("k", 1)
    now[0] = 8
    cache.set("k", 2)
    now[0] = 15
    assert cache.get("k") == 2


def test_invalidate_and_clear():
    cache = TTLCache(60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.invalidate("a")
    assert cache.get("a") is None
    cache.clear()
    assert len(cache) == 0
