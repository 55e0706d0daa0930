"""
Per-user usage ledger -- the source of truth for billable query counts.

Two implementations of ``UsageLedger``:

- ``InMemoryUsageLedger`` -- dict-backed, for tests / single process dev.
- ``SqlUsageLedger`` -- a ``user_usage`` table via SQLAlchemy Core.  The
  table is created automatically by ``ensure_table()``.

Unknown users are created on first read on the starter tier, with the
first reset at the start of next month.  ``queries_limit`` NULL in the
table means unbounded.
"""
from __future__ import annotations

import math
import threading
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from sqlalchemy import (
    Column, DateTime, Integer, MetaData, String, Table, insert, select, update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from querygate.core.logging import get_logger
from querygate.core.utils import as_utc, utcnow
from querygate.governance.tiers import Tier, limits_for
from querygate.governance.usage_gate import UsageRecord, reset_if_needed, start_of_next_month

logger = get_logger(__name__)


class UsageLedger(Protocol):
    def get(self, user_id: str) -> UsageRecord: ...

    def increment_used(self, user_id: str) -> None: ...

    def reset_if_past_due(self, user_id: str, now: datetime | None = None) -> None: ...

    def set_tier(self, user_id: str, tier: Tier | str) -> None: ...


def new_usage_record(user_id: str, tier: Tier | str = Tier.STARTER, now: datetime | None = None) -> UsageRecord:
    """Fresh record for a user who has not queried yet."""
    return UsageRecord(
        user_id=user_id,
        tier=Tier(tier),
        queries_used=0,
        queries_limit=limits_for(tier).queries_per_month,
        reset_date=start_of_next_month(now),
    )


# ── In-memory ledger ────────────────────────────────────


class InMemoryUsageLedger:
    def __init__(self) -> None:
        self._records: dict[str, UsageRecord] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> UsageRecord:
        with self._lock:
            record = self._records.get(user_id)
            if record is None:
                record = new_usage_record(user_id)
                self._records[user_id] = record
            return record

    def put(self, record: UsageRecord) -> None:
        """Insert or overwrite a record (seeding / tests)."""
        with self._lock:
            self._records[record.user_id] = record

    def increment_used(self, user_id: str) -> None:
        record = self.get(user_id)
        with self._lock:
            current = self._records.get(user_id, record)
            self._records[user_id] = replace(current, queries_used=current.queries_used + 1)

    def reset_if_past_due(self, user_id: str, now: datetime | None = None) -> None:
        record = self.get(user_id)
        with self._lock:
            current = self._records.get(user_id, record)
            updated = reset_if_needed(current, now)
            if updated is not current:
                logger.info("Usage reset user=%s next_reset=%s", user_id, updated.reset_date.isoformat())
                self._records[user_id] = updated

    def set_tier(self, user_id: str, tier: Tier | str) -> None:
        record = self.get(user_id)
        with self._lock:
            current = self._records.get(user_id, record)
            self._records[user_id] = replace(
                current, tier=Tier(tier), queries_limit=limits_for(tier).queries_per_month,
            )


# ── SQL ledger ──────────────────────────────────────────

_TABLE = "user_usage"

_metadata = MetaData()

user_usage = Table(
    _TABLE,
    _metadata,
    Column("user_id", String(128), primary_key=True),
    Column("tier", String(20), nullable=False, default=Tier.STARTER.value),
    Column("queries_used", Integer, nullable=False, default=0),
    Column("queries_limit", Integer, nullable=True),  # NULL = unbounded
    Column("reset_date", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


def _to_limit(value: int | None) -> float:
    return math.inf if value is None else value


def _from_limit(value: float) -> int | None:
    return None if math.isinf(value) else int(value)


class SqlUsageLedger:
    def __init__(self, engine: Engine):
        self._engine = engine

    def ensure_table(self) -> None:
        """Create the usage table if it doesn't exist."""
        _metadata.create_all(self._engine, tables=[user_usage])
        logger.info("Usage table '%s' ensured", _TABLE)

    def get(self, user_id: str) -> UsageRecord:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(user_usage).where(user_usage.c.user_id == user_id)
            ).mappings().first()
            if row is None:
                record = new_usage_record(user_id)
                try:
                    conn.execute(insert(user_usage).values(**self._to_row(record)))
                    conn.commit()
                    logger.info("Usage record created user=%s tier=%s", user_id, record.tier.value)
                    return record
                except IntegrityError:
                    # Created concurrently by another request.
                    conn.rollback()
                    row = conn.execute(
                        select(user_usage).where(user_usage.c.user_id == user_id)
                    ).mappings().one()
        return self._from_row(row)

    def put(self, record: UsageRecord) -> None:
        """Insert or overwrite a record (seeding / tests)."""
        values = self._to_row(record)
        with self._engine.begin() as conn:
            updated = conn.execute(
                update(user_usage).where(user_usage.c.user_id == record.user_id).values(**values)
            )
            if updated.rowcount == 0:
                conn.execute(insert(user_usage).values(**values))

    def increment_used(self, user_id: str) -> None:
        self.get(user_id)
        with self._engine.begin() as conn:
            conn.execute(
                update(user_usage)
                .where(user_usage.c.user_id == user_id)
                .values(queries_used=user_usage.c.queries_used + 1, updated_at=utcnow())
            )
        logger.debug("Usage incremented user=%s", user_id)

    def reset_if_past_due(self, user_id: str, now: datetime | None = None) -> None:
        now = as_utc(now or utcnow())
        record = self.get(user_id)
        updated = reset_if_needed(record, now)
        if updated is record:
            return
        with self._engine.begin() as conn:
            result = conn.execute(
                update(user_usage)
                .where(user_usage.c.user_id == user_id)
                .where(user_usage.c.reset_date <= now)
                .values(queries_used=0, reset_date=updated.reset_date, updated_at=now)
            )
        if result.rowcount:
            logger.info("Usage reset user=%s next_reset=%s", user_id, updated.reset_date.isoformat())

    def set_tier(self, user_id: str, tier: Tier | str) -> None:
        tier = Tier(tier)
        self.get(user_id)
        with self._engine.begin() as conn:
            conn.execute(
                update(user_usage)
                .where(user_usage.c.user_id == user_id)
                .values(
                    tier=tier.value,
                    queries_limit=_from_limit(limits_for(tier).queries_per_month),
                    updated_at=utcnow(),
                )
            )
        logger.info("Tier changed user=%s tier=%s", user_id, tier.value)

    # ── Internals ───────────────────────────────────────

    @staticmethod
    def _to_row(record: UsageRecord) -> dict:
        return {
            "user_id": record.user_id,
            "tier": record.tier.value,
            "queries_used": record.queries_used,
            "queries_limit": _from_limit(record.queries_limit),
            "reset_date": record.reset_date,
            "updated_at": utcnow(),
        }

    @staticmethod
    def _from_row(row) -> UsageRecord:
        return UsageRecord(
            user_id=row["user_id"],
            tier=Tier(row["tier"]),
            queries_used=row["queries_used"],
            queries_limit=_to_limit(row["queries_limit"]),
            reset_date=as_utc(row["reset_date"]),
        )
