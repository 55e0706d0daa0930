"""
Integration tests -- Redis-backed query cache.

Requires a live Redis at REDIS_URL (default redis://localhost:6379/0).
"""
from __future__ import annotations

import time
import uuid

import pytest

from querygate.core.config import get_settings
from querygate.copilot.kv_store import RedisKeyValueStore

store = RedisKeyValueStore.from_url(get_settings().redis_url, timeout=0.5)
REDIS_AVAILABLE = store.ping()

pytestmark = pytest.mark.skipif(not REDIS_AVAILABLE, reason="Redis not reachable")

from querygate.copilot.cache import QueryResultCache
from querygate.copilot.results import AnalysisResult, CachedQueryResult


def _key() -> str:
    return f"query:pytest:{uuid.uuid4()}:abc"


def test_round_trip_model():
    cache = QueryResultCache(store)
    key = _key()
    answer = CachedQueryResult(result=AnalysisResult(summary="ok"), explanation="why")
    cache.set(key, answer)
    assert cache.get(key, model=CachedQueryResult) == answer
    cache.delete(key)


def test_ttl_applied():
    key = _key()
    QueryResultCache(store).set(key, {"a": 1}, ttl_seconds=30)
    assert 0 < store.client.ttl(key) <= 30
    store.delete(key)


def test_entry_expires():
    cache = QueryResultCache(store)
    key = _key()
    cache.set(key, "value", ttl_seconds=1)
    time.sleep(1.1)
    assert cache.get(key) is None


def test_delete():
    cache = QueryResultCache(store)
    key = _key()
    cache.set(key, "value")
    cache.delete(key)
    assert cache.get(key) is None
