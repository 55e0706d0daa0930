"""SQLAlchemy engine factory for the usage ledger.

The engine is created once from settings and handed to ``SqlUsageLedger``
by the API wiring; tests build their own engines instead.
"""
from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from querygate.core.config import get_settings
from querygate.core.logging import get_logger

logger = get_logger(__name__)


@lru_cache
def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    settings = get_settings()
    engine = create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        echo=False,
    )
    logger.info("DB engine created  host=%s  db=%s", settings.postgres_host, settings.postgres_db)
    return engine
