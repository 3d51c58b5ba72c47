from fastbill.services.cache_service import TTLCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = TTLCache(default_ttl=60, clock=clock)
    cache.set("tier:1", "PAID")

    clock.now += 60
    assert cache.get("tier:1") == "PAID"

    clock.now += 1
    assert cache.get("tier:1") is None
    assert len(cache) == 0


def test_per_entry_ttl_and_default():
    clock = FakeClock()
    cache = TTLCache(default_ttl=60, clock=clock)
    cache.set("short", 1, ttl=5)
    cache.set("long", 2)

    clock.now += 10

    assert cache.get("short", "gone") == "gone"
    assert cache.get("long") == 2


def test_evict_expired():
    clock = FakeClock()
    cache = TTLCache(default_ttl=10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=100)

    clock.now += 11

    assert cache.evict_expired() == 1
    assert len(cache) == 1


def test_delete_and_clear():
    cache = TTLCache()
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    assert cache.get("a") is None
    cache.clear()
    assert len(cache) == 0
