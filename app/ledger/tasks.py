"""
Celery tasks for the ledger.

This module provides:
- run_host_settlement: Monthly settlement of host debts to the platform

The task is scheduled on the 1st of every month through
CELERY_BEAT_SCHEDULE in config/settings.py.

Usage:
    from ledger.tasks import run_host_settlement

    # Settle last month, dry run
    run_host_settlement.delay(dry_run=True)

    # Settle September 2026 for one host
    run_host_settlement.delay(base_date="2026-10-01", host_id=42)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone as dt_timezone

from celery import shared_task
from django.conf import settings

logger = logging.getLogger(__name__)


def parse_base_date(value: str | datetime | None) -> datetime | None:
    """Accept an ISO date/datetime string; naive values are taken as UTC."""
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt_timezone.utc)
    return parsed


@shared_task(acks_late=True)
def run_host_settlement(
    base_date: str | None = None,
    host_id: int | None = None,
    slugs: list[str] | None = None,
    skip_slugs: list[str] | None = None,
    kind: str | None = None,
    dry_run: bool = False,
    minimum_amount_usd: int | None = None,
) -> dict:
    """
    Settle what every host owes the platform for the previous month.

    Per-host failures are counted in the returned stats. A missing
    platform payout method aborts the run and is re-raised.

    Args:
        base_date: ISO date; the month before it is billed (default: now)
        host_id: Only settle this host
        slugs: Only settle these host slugs
        skip_slugs: Never settle these host slugs
        kind: PLATFORM_TIP_DEBT or HOST_FEE_SHARE_DEBT only
        dry_run: Log what would be created without writing
        minimum_amount_usd: Override SETTLEMENT_MINIMUM_AMOUNT_USD

    Returns:
        Settlement stats dict, or {"status": "skipped"} when
        SKIP_HOST_SETTLEMENT is set
    """
    from ledger.services.settlement import SettlementEngine
    from ledger.types import SettlementOptions

    if settings.SKIP_HOST_SETTLEMENT:
        logger.info("Host settlement disabled by SKIP_HOST_SETTLEMENT")
        return {"status": "skipped"}

    options = SettlementOptions(
        base_date=parse_base_date(base_date),
        host_id=host_id,
        slugs=slugs or [],
        skip_slugs=skip_slugs or [],
        kind=kind,
        dry_run=dry_run,
        minimum_amount_usd=minimum_amount_usd,
    )

    try:
        return SettlementEngine(options).run()
    except Exception:
        logger.exception(
            "Host settlement run failed",
            extra={"base_date": base_date, "dry_run": dry_run},
        )
        raise
