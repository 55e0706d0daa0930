"""
Key-value store backends for the query result cache.

Any object with ``get`` / ``set_with_expiry`` / ``delete`` satisfies
``KeyValueStore``.  Two backends ship:

- ``InMemoryKeyValueStore`` -- process-local dict, for tests and single
  process development.
- ``RedisKeyValueStore`` -- Redis (local or managed, e.g. Upstash via a
  ``rediss://`` URL).

Backends raise on failure.  Swallowing errors is the cache layer's job.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import redis

from querygate.core.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set_with_expiry(self, key: str, value: bytes, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...


# ── In-memory backend ───────────────────────────────────


@dataclass
class _Entry:
    value: bytes
    expires_at: float


class InMemoryKeyValueStore:
    """Thread-safe dict store with per-entry expiry.

    Parameters
    ----------
    clock : callable
        Returns the current time in seconds.  Injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._store: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> bytes | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._store[key]
                return None
            return entry.value

    def set_with_expiry(self, key: str, value: bytes, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        with self._lock:
            self._store[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, v in self._store.items() if now >= v.expires_at]
            for k in expired:
                del self._store[k]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


# ── Redis backend ───────────────────────────────────────


class RedisKeyValueStore:
    """Redis-backed store using ``SETEX`` for expiry."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str, timeout: float = 2.0) -> "RedisKeyValueStore":
        client = redis.from_url(
            url,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        logger.info("Redis store created  url=%s", url.split("@")[-1])
        return cls(client)

    def get(self, key: str) -> bytes | None:
        value = self.client.get(key)
        if value is None:
            return None
        if isinstance(value, str):
            return value.encode("utf-8")
        return value

    def set_with_expiry(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self.client.setex(key, ttl_seconds, value)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False
