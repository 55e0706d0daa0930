"""
Usage gate -- decides whether a non-cached query is billable and allowed.

The gate is stateless: it classifies a ``UsageRecord`` snapshot and never
writes to the ledger.  Callers must apply ``reset_if_needed`` (or the
ledger's ``reset_if_past_due``) before every quota check, otherwise a
request arriving just after the reset boundary sees stale counters.

Cached answers are always free.  A limit of ``math.inf`` always permits.
"""
from __future__ import annotations

import calendar
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from querygate.core.utils import as_utc, utcnow
from querygate.governance.tiers import Tier

# ── Thresholds ──────────────────────────────────────────

CRITICAL_REMAINING = 5
WARNING_REMAINING = 15


class QueryStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class UsageRecord:
    """One user's billing-period counters."""
    user_id: str
    tier: Tier
    queries_used: int
    queries_limit: float  # int, or math.inf for unbounded
    reset_date: datetime

    def __post_init__(self):
        if self.queries_used < 0:
            raise ValueError(f"queries_used must be >= 0, got {self.queries_used}")
        object.__setattr__(self, "tier", Tier(self.tier))
        object.__setattr__(self, "reset_date", as_utc(self.reset_date))

    @property
    def unbounded(self) -> bool:
        return math.isinf(self.queries_limit)


# ── Classification ──────────────────────────────────────


def can_make_query(usage: UsageRecord, is_cached_answer: bool) -> bool:
    """Cache hits are free; otherwise the user must be under the limit."""
    if is_cached_answer:
        return True
    return usage.queries_used < usage.queries_limit


def remaining_queries(usage: UsageRecord) -> float:
    """``max(0, limit - used)``; ``math.inf`` for an unbounded limit."""
    if usage.unbounded:
        return math.inf
    return max(0, int(usage.queries_limit) - usage.queries_used)


def query_status(usage: UsageRecord) -> QueryStatus:
    remaining = remaining_queries(usage)
    if remaining <= CRITICAL_REMAINING:
        return QueryStatus.CRITICAL
    if remaining <= WARNING_REMAINING:
        return QueryStatus.WARNING
    return QueryStatus.OK


# ── Billing period ──────────────────────────────────────


def add_months(value: datetime, months: int) -> datetime:
    """Shift by whole calendar months, clamping the day to the month's length."""
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def start_of_next_month(now: datetime | None = None) -> datetime:
    """Midnight UTC on the first day of the month after ``now``."""
    now = as_utc(now or utcnow())
    first = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    return add_months(first, 1)


def next_reset_after(reset_date: datetime, now: datetime) -> datetime:
    """First whole-month step from ``reset_date`` that lies strictly after ``now``.

    Steps are always taken from the stored boundary so the day of month
    does not drift (Jan 31 -> Feb 29 -> Mar 31).
    """
    reset_date = as_utc(reset_date)
    now = as_utc(now)
    months = max(1, (now.year - reset_date.year) * 12 + now.month - reset_date.month)
    candidate = add_months(reset_date, months)
    while candidate <= now:
        months += 1
        candidate = add_months(reset_date, months)
    return candidate


def reset_if_needed(usage: UsageRecord, now: datetime | None = None) -> UsageRecord:
    """Zero the counter once ``reset_date`` has passed; otherwise return ``usage``."""
    now = as_utc(now or utcnow())
    if now < usage.reset_date:
        return usage
    return replace(
        usage,
        queries_used=0,
        reset_date=next_reset_after(usage.reset_date, now),
    )


def days_until_reset(usage: UsageRecord, now: datetime | None = None) -> int:
    """Whole days (rounded up) until the counters reset."""
    now = as_utc(now or utcnow())
    seconds = (usage.reset_date - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)
