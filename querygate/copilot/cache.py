"""
Query result caching layer.

Wraps a ``KeyValueStore`` with JSON serialisation, a fixed default TTL and
a strict best-effort policy: every backend or (de)serialisation failure is
logged and treated as a miss (``get``) or a no-op (``set`` / ``delete``).
The cache is never a source of truth, so an outage only costs latency and
quota, never a wrong answer.

There are no retries.  Keys come from ``querygate.copilot.cache_keys``.
"""
from __future__ import annotations

import json
import threading
from typing import Any, TypeVar

from pydantic import BaseModel

from querygate.copilot.kv_store import KeyValueStore
from querygate.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


# ── Configuration ───────────────────────────────────────

DEFAULT_TTL_SECONDS = 3600  # 1 hour


# ── Cache implementation ────────────────────────────────


class QueryResultCache:
    """Best-effort get/set/delete over an injected key-value store.

    Parameters
    ----------
    store : KeyValueStore
        Backend holding serialised entries.
    ttl_seconds : int
        Expiry applied by ``set`` when no explicit TTL is passed.
    """

    def __init__(self, store: KeyValueStore, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self._store = store
        self._ttl = ttl_seconds
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._errors = 0

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    # ── Public API ──────────────────────────────────────

    def get(self, key: str, model: type[T] | None = None) -> Any | None:
        """Return the stored value, or ``None`` on miss / expiry / failure.

        With ``model`` the payload is validated into that pydantic model,
        otherwise the decoded JSON is returned as-is.
        """
        try:
            raw = self._store.get(key)
            if raw is None:
                self._count(miss=True)
                logger.debug("Cache MISS key=%s", key)
                return None
            value = model.model_validate_json(raw) if model else json.loads(raw)
        except ValueError as exc:
            self._count(miss=True, error=True)
            logger.warning("Cache entry unreadable key=%s: %s", key, exc)
            return None
        except Exception:
            self._count(miss=True, error=True)
            logger.warning("Cache get failed key=%s -- treating as miss", key, exc_info=True)
            return None

        self._count(miss=False)
        logger.debug("Cache HIT key=%s", key)
        return value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Serialise and store ``value``.  Never raises."""
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        try:
            payload = self._serialise(value)
            self._store.set_with_expiry(key, payload, ttl)
        except Exception:
            with self._lock:
                self._errors += 1
            logger.warning("Cache set failed key=%s -- continuing", key, exc_info=True)
            return
        logger.debug("Cache PUT key=%s ttl=%d", key, ttl)

    def delete(self, key: str) -> None:
        """Invalidate one entry.  Never raises."""
        try:
            self._store.delete(key)
        except Exception:
            with self._lock:
                self._errors += 1
            logger.warning("Cache delete failed key=%s -- continuing", key, exc_info=True)
            return
        logger.debug("Cache DELETE key=%s", key)

    def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "errors": self._errors,
                "hit_rate": round(self._hits / total, 3) if total else 0.0,
            }

    # ── Internals ───────────────────────────────────────

    @staticmethod
    def _serialise(value: Any) -> bytes:
        if isinstance(value, BaseModel):
            return value.model_dump_json().encode("utf-8")
        return json.dumps(value).encode("utf-8")

    def _count(self, miss: bool, error: bool = False) -> None:
        with self._lock:
            if miss:
                self._misses += 1
            else:
                self._hits += 1
            if error:
                self._errors += 1
