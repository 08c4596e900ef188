#!/usr/bin/env python
"""
Run the monthly host settlement from the command line.

Environment variables:
    BASE_DATE           ISO date; the month before it is billed (default: now)
    HOST_ID             Only settle this host
    SLUGS               Comma-separated host slugs to settle
    SKIP_SLUGS          Comma-separated host slugs to skip
    KIND                PLATFORM_TIP_DEBT or HOST_FEE_SHARE_DEBT
    DRY                 Any non-empty value: log only, write nothing
    MINIMUM_AMOUNT_USD  Settlement floor in USD minor units
    SKIP_HOST_SETTLEMENT  Exit without doing anything

Usage:
    DRY=1 BASE_DATE=2026-10-01 python scripts/run_host_settlement.py
"""

import json
import os
import sys

import django

# Add the app directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "app"))

# Setup Django
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
django.setup()

import environ  # noqa: E402

from ledger.tasks import run_host_settlement  # noqa: E402

env = environ.Env()


def main() -> int:
    host_id = env.int("HOST_ID", default=None)
    minimum = env.int("MINIMUM_AMOUNT_USD", default=None)

    stats = run_host_settlement.run(
        base_date=env.str("BASE_DATE", default=None),
        host_id=host_id,
        slugs=env.list("SLUGS", default=[]),
        skip_slugs=env.list("SKIP_SLUGS", default=[]),
        kind=env.str("KIND", default=None) or None,
        dry_run=bool(env.str("DRY", default="")),
        minimum_amount_usd=minimum,
    )
    print(json.dumps(stats, indent=2))
    return 1 if stats.get("failed") else 0


if __name__ == "__main__":
    sys.exit(main())
