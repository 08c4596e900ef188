"""
Tests for ledger Celery tasks.

Tests cover:
- run_host_settlement task
- parse_base_date helper
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from ledger.exceptions import PlatformPayoutMethodMissing
from ledger.tasks import parse_base_date, run_host_settlement
from ledger.state_machines import TransactionKind


# =============================================================================
# parse_base_date Tests
# =============================================================================


class TestParseBaseDate:
    def test_none(self):
        assert parse_base_date(None) is None

    def test_naive_date_is_utc(self):
        assert parse_base_date("2026-10-01") == datetime(2026, 10, 1, tzinfo=dt_timezone.utc)

    def test_offset_is_kept(self):
        parsed = parse_base_date("2026-10-01T02:00:00+02:00")

        assert parsed.utcoffset() == timedelta(hours=2)

    def test_datetime_passes_through(self):
        value = datetime(2026, 10, 1, tzinfo=dt_timezone.utc)

        assert parse_base_date(value) is value


# =============================================================================
# run_host_settlement Tests
# =============================================================================


class TestRunHostSettlementTask:
    """Tests for the run_host_settlement task."""

    @pytest.fixture
    def engine_cls(self, mocker):
        engine_cls = mocker.patch("ledger.services.settlement.SettlementEngine")
        engine_cls.return_value.run.return_value = {"expenses_created": 3, "failed": 0}
        return engine_cls

    def test_runs_engine_with_options(self, settings, engine_cls):
        """Should build SettlementOptions from the task arguments."""
        settings.SKIP_HOST_SETTLEMENT = False

        result = run_host_settlement(
            base_date="2026-10-01",
            slugs=["open-source-host"],
            kind=TransactionKind.PLATFORM_TIP_DEBT,
            dry_run=True,
            minimum_amount_usd=0,
        )

        assert result == {"expenses_created": 3, "failed": 0}
        options = engine_cls.call_args.args[0]
        assert options.base_date == datetime(2026, 10, 1, tzinfo=dt_timezone.utc)
        assert options.slugs == ["open-source-host"]
        assert options.skip_slugs == []
        assert options.kind == TransactionKind.PLATFORM_TIP_DEBT
        assert options.dry_run is True
        assert options.minimum_amount_usd == 0

    def test_skipped_when_disabled(self, settings, engine_cls):
        """SKIP_HOST_SETTLEMENT turns the task into a no-op."""
        settings.SKIP_HOST_SETTLEMENT = True

        result = run_host_settlement()

        assert result == {"status": "skipped"}
        engine_cls.assert_not_called()

    def test_fatal_error_is_reraised(self, settings, engine_cls):
        settings.SKIP_HOST_SETTLEMENT = False
        engine_cls.return_value.run.side_effect = PlatformPayoutMethodMissing("no payout method")

        with pytest.raises(PlatformPayoutMethodMissing):
            run_host_settlement(base_date="2026-10-01")

    def test_dry_run_against_database(self, settings, platform, platform_payout_method, host):
        """A real dry run with no activity touches no host."""
        settings.SKIP_HOST_SETTLEMENT = False

        stats = run_host_settlement(base_date="2026-10-01", dry_run=True)

        assert stats["hosts_processed"] == 0
        assert stats["dry_run"] is True
