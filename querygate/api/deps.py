"""
Component wiring for the API.

Everything is built once from settings and injected through FastAPI
dependencies, so tests can swap in fakes with ``app.dependency_overrides``.
"""
from __future__ import annotations

from functools import lru_cache

from querygate.copilot.analyzer import Analyzer
from querygate.copilot.cache import QueryResultCache
from querygate.copilot.kv_store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from querygate.copilot.service import QueryPipeline
from querygate.core.config import get_settings
from querygate.core.logging import get_logger
from querygate.db.usage_ledger import InMemoryUsageLedger, SqlUsageLedger, UsageLedger

logger = get_logger(__name__)


def build_store(backend: str, redis_url: str) -> KeyValueStore:
    if backend == "redis":
        return RedisKeyValueStore.from_url(redis_url)
    if backend == "memory":
        return InMemoryKeyValueStore()
    raise ValueError(f"Unknown cache backend '{backend}'. Choose from: memory, redis")


def build_ledger(backend: str) -> UsageLedger:
    if backend == "sql":
        from querygate.db.connection import get_engine

        ledger = SqlUsageLedger(get_engine())
        ledger.ensure_table()
        return ledger
    if backend == "memory":
        return InMemoryUsageLedger()
    raise ValueError(f"Unknown usage backend '{backend}'. Choose from: memory, sql")


@lru_cache
def get_pipeline() -> QueryPipeline:
    settings = get_settings()
    pipeline = QueryPipeline(
        cache=QueryResultCache(
            build_store(settings.cache_backend, settings.redis_url),
            ttl_seconds=settings.cache_ttl_seconds,
        ),
        ledger=build_ledger(settings.usage_backend),
        analyzer=Analyzer(
            provider=settings.llm_provider,
            explanation_timeout=settings.explanation_timeout_seconds,
        ),
    )
    logger.info(
        "Pipeline wired  cache=%s  usage=%s  llm=%s",
        settings.cache_backend, settings.usage_backend, settings.llm_provider,
    )
    return pipeline


def background_writes() -> bool:
    return get_settings().cache_write_mode == "background"
