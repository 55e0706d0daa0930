"""
Per-key in-flight de-duplication.

Concurrent callers asking for the same key share a single execution of the
expensive function.  The first caller (the leader) runs it; the others block
until it finishes and receive the same value, or the same exception.
"""
from __future__ import annotations

import threading
from typing import Any, Callable

from querygate.core.logging import get_logger

logger = get_logger(__name__)


class _Call:
    def __init__(self) -> None:
        self.done = threading.Event()
        self.value: Any = None
        self.error: BaseException | None = None
        self.waiters = 0


class SingleFlight:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[str, _Call] = {}

    def do(self, key: str, fn: Callable[[], Any]) -> tuple[Any, bool]:
        """Run ``fn`` once per concurrent ``key``.

        Returns
        -------
        tuple
            ``(value, shared)`` where ``shared`` is True for callers that
            received another caller's result.
        """
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if leader:
                call = _Call()
                self._calls[key] = call
            else:
                call.waiters += 1

        if not leader:
            logger.debug("Single-flight join key=%s", key)
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.value, True

        try:
            call.value = fn()
        except BaseException as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                del self._calls[key]
            call.done.set()
        return call.value, False

    def in_flight(self) -> int:
        with self._lock:
            return len(self._calls)

    def waiting(self, key: str) -> int:
        """Number of callers currently joined to the in-flight call for ``key``."""
        with self._lock:
            call = self._calls.get(key)
            return call.waiters if call else 0
