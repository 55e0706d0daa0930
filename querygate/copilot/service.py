"""
Query pipeline -- cache lookup -> usage gate -> analysis -> cache store -> bill.

Order matters:

1. derive the cache key and look it up; a hit is answered for free, even
   when the user's quota is exhausted (the usage it reports has the
   billing-period reset applied, and a ledger failure only blanks it);
2. on a miss, apply the billing-period reset and check the usage gate;
   a denial is a normal outcome, not an exception;
3. run the analysis (de-duplicated per key across concurrent requests);
4. store the answer, inline or through a caller-supplied scheduler
   (fire-and-forget);
5. increment usage, strictly after the analysis succeeded.  Requests that
   joined another request's in-flight analysis are not billed.

A failure in step 3 propagates and nothing is billed.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from querygate.copilot.analyzer import Analyzer
from querygate.copilot.cache import QueryResultCache
from querygate.copilot.cache_keys import derive_key
from querygate.copilot.results import CachedQueryResult, DataSourceRef
from querygate.copilot.single_flight import SingleFlight
from querygate.core.logging import get_logger
from querygate.db.usage_ledger import UsageLedger
from querygate.governance.usage_gate import UsageRecord, can_make_query

logger = get_logger(__name__)

Scheduler = Callable[..., Any]


@dataclass
class QueryOutcome:
    """Result of one pass through the pipeline."""
    cache_key: str
    allowed: bool
    cached: bool = False
    shared: bool = False
    answer: CachedQueryResult | None = None
    usage: UsageRecord | None = None
    latency_ms: int = 0

    @property
    def billed(self) -> bool:
        return self.allowed and not self.cached and not self.shared


class QueryPipeline:
    """Composes the cache, the usage ledger and the analyzer.

    Parameters
    ----------
    cache : QueryResultCache
    ledger : UsageLedger
    analyzer : Analyzer
    single_flight : SingleFlight, optional
        Shared de-duplication registry; a private one is created if omitted.
    """

    def __init__(
        self,
        cache: QueryResultCache,
        ledger: UsageLedger,
        analyzer: Analyzer,
        single_flight: SingleFlight | None = None,
    ):
        self.cache = cache
        self.ledger = ledger
        self.analyzer = analyzer
        self.single_flight = single_flight or SingleFlight()

    def ask(
        self,
        user_id: str,
        source: DataSourceRef,
        prompt: str,
        schedule: Scheduler | None = None,
        now: datetime | None = None,
    ) -> QueryOutcome:
        """Answer ``prompt`` against ``source`` on behalf of ``user_id``.

        ``schedule`` -- e.g. FastAPI ``BackgroundTasks.add_task`` -- defers
        the cache write until after the response is sent; without it the
        write happens inline.
        """
        t0 = time.perf_counter()
        key = derive_key(source.id, prompt, source.fingerprint)
        logger.info("Pipeline.ask | user=%s | source=%s | key=%s", user_id, source.id, key)

        # ── Check cache first ───────────────────────────
        cached = self.cache.get(key, model=CachedQueryResult)
        if cached is not None:
            logger.info("Cache HIT -- not billed user=%s", user_id)
            return QueryOutcome(
                cache_key=key,
                allowed=True,
                cached=True,
                answer=cached,
                usage=self._usage_for_hit(user_id, now),
                latency_ms=self._elapsed(t0),
            )

        # ── Usage gate ──────────────────────────────────
        self.ledger.reset_if_past_due(user_id, now)
        usage = self.ledger.get(user_id)
        if not can_make_query(usage, is_cached_answer=False):
            logger.info(
                "Query limit reached user=%s used=%d limit=%s",
                user_id, usage.queries_used, usage.queries_limit,
            )
            return QueryOutcome(
                cache_key=key,
                allowed=False,
                usage=usage,
                latency_ms=self._elapsed(t0),
            )

        # ── Analysis (single-flight per key) ────────────
        answer, shared = self.single_flight.do(key, lambda: self._analyze(source, prompt))

        if not shared:
            if schedule is not None:
                schedule(self.cache.set, key, answer)
            else:
                self.cache.set(key, answer)
            self.ledger.increment_used(user_id)
            usage = self.ledger.get(user_id)

        return QueryOutcome(
            cache_key=key,
            allowed=True,
            shared=shared,
            answer=answer,
            usage=usage,
            latency_ms=self._elapsed(t0),
        )

    # ── Internals ───────────────────────────────────────

    def _analyze(self, source: DataSourceRef, prompt: str) -> CachedQueryResult:
        result = self.analyzer.analyze(prompt, source)
        explanation = self.analyzer.explain(prompt, source, result)
        return CachedQueryResult(result=result, explanation=explanation)

    def _usage_for_hit(self, user_id: str, now: datetime | None) -> UsageRecord | None:
        # A hit is free, so a ledger outage only costs the usage readout.
        try:
            self.ledger.reset_if_past_due(user_id, now)
            return self.ledger.get(user_id)
        except Exception:
            logger.warning("Usage lookup failed on cache hit user=%s", user_id, exc_info=True)
            return None

    @staticmethod
    def _elapsed(t0: float) -> int:
        return int((time.perf_counter() - t0) * 1000)
