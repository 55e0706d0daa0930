"""
Unit tests -- key-value store backends.
"""
import pytest
from querygate.copilot.kv_store import InMemoryKeyValueStore, RedisKeyValueStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeRedisClient:
    """Just enough of redis.Redis for the store wrapper."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self.data.pop(key, None)

    def ping(self):
        return True


# ── InMemoryKeyValueStore ───────────────────────────────

def test_memory_set_and_get():
    store = InMemoryKeyValueStore()
    store.set_with_expiry("k", b"v", 60)
    assert store.get("k") == b"v"


def test_memory_miss():
    assert InMemoryKeyValueStore().get("missing") is None


def test_memory_expiry_with_clock():
    clock = FakeClock()
    store = InMemoryKeyValueStore(clock=clock)
    store.set_with_expiry("k", b"v", 10)
    clock.now += 9
    assert store.get("k") == b"v"
    clock.now += 1
    assert store.get("k") is None


def test_memory_read_does_not_renew_ttl():
    clock = FakeClock()
    store = InMemoryKeyValueStore(clock=clock)
    store.set_with_expiry("k", b"v", 10)
    clock.now += 8
    assert store.get("k") == b"v"
    clock.now += 3
    assert store.get("k") is None


def test_memory_overwrite_resets_expiry():
    clock = FakeClock()
    store = InMemoryKeyValueStore(clock=clock)
    store.set_with_expiry("k", b"old", 10)
    clock.now += 8
    store.set_with_expiry("k", b"new", 10)
    clock.now += 8
    assert store.get("k") == b"new"


def test_memory_delete():
    store = InMemoryKeyValueStore()
    store.set_with_expiry("k", b"v", 60)
    store.delete("k")
    store.delete("never-set")
    assert store.get("k") is None


def test_memory_rejects_non_positive_ttl():
    with pytest.raises(ValueError, match="ttl_seconds"):
        InMemoryKeyValueStore().set_with_expiry("k", b"v", 0)


def test_memory_cleanup_expired():
    clock = FakeClock()
    store = InMemoryKeyValueStore(clock=clock)
    store.set_with_expiry("a", b"1", 5)
    store.set_with_expiry("b", b"2", 50)
    clock.now += 10
    assert store.cleanup_expired() == 1
    assert len(store) == 1


# ── RedisKeyValueStore ──────────────────────────────────

def test_redis_store_uses_setex():
    client = FakeRedisClient()
    store = RedisKeyValueStore(client)
    store.set_with_expiry("k", b"v", 3600)
    assert client.ttls["k"] == 3600
    assert store.get("k") == b"v"


def test_redis_store_encodes_str_replies():
    client = FakeRedisClient()
    client.data["k"] = "text"
    assert RedisKeyValueStore(client).get("k") == b"text"


def test_redis_store_delete_and_miss():
    client = FakeRedisClient()
    store = RedisKeyValueStore(client)
    store.set_with_expiry("k", b"v", 60)
    store.delete("k")
    assert store.get("k") is None


def test_redis_store_ping():
    assert RedisKeyValueStore(FakeRedisClient()).ping() is True
