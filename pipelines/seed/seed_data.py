"""
Seed data generator -- fills the ``user_usage`` table with demo users.

Generates:
  - ~200 users spread over the starter / pro / agency tiers
  - usage counters anywhere from untouched to over the limit
  - a handful of users whose reset date is already past, to exercise
    the billing-period rollover

All rows are written through ``SqlUsageLedger``.
Run:  python -m pipelines.seed.seed_data
"""
from __future__ import annotations

import random
from dataclasses import replace
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv
from faker import Faker
from sqlalchemy import create_engine

from querygate.core.config import get_settings
from querygate.core.utils import utcnow
from querygate.db.usage_ledger import SqlUsageLedger, new_usage_record
from querygate.governance.tiers import Tier

# ── Load .env from project root ─────────────────────────
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(_PROJECT_ROOT / ".env")

fake = Faker()
Faker.seed(42)
random.seed(42)

# ── Tunables ─────────────────────────────────────────────
NUM_USERS = 200
TIER_WEIGHTS = {Tier.STARTER: 0.70, Tier.PRO: 0.25, Tier.AGENCY: 0.05}
STALE_RESET_SHARE = 0.05


def _random_user():
    tier = random.choices(list(TIER_WEIGHTS), weights=list(TIER_WEIGHTS.values()))[0]
    record = new_usage_record(fake.uuid4(), tier)
    used = random.randint(0, int(record.queries_limit))
    reset_date = record.reset_date
    if random.random() < STALE_RESET_SHARE:
        reset_date = utcnow() - timedelta(days=random.randint(1, 90))
    return replace(record, queries_used=used, reset_date=reset_date)


def main(num_users: int = NUM_USERS) -> int:
    print("═══ Usage Seed Generator ═══")
    engine = create_engine(get_settings().database_url)
    ledger = SqlUsageLedger(engine)
    ledger.ensure_table()

    for _ in range(num_users):
        ledger.put(_random_user())

    print(f"Done — seeded {num_users:,} users into user_usage")
    return num_users


if __name__ == "__main__":
    main()
