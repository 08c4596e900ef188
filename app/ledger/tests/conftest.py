"""
Pytest fixtures for ledger tests.

Sections:
    - Party Fixtures: Platform, host, collective and contributor
    - Service Fixtures: Converter seeded with stored rates, writer, balances
    - Infrastructure Fixtures: Redis mock, media root
"""

from datetime import datetime, timezone as dt_timezone

import pytest

from accounts.models import CollectiveType, PayoutMethodType
from accounts.tests.factories import (
    CollectiveFactory,
    HostFactory,
    PayoutMethodFactory,
    PlatformFactory,
)
from ledger.services import BalanceService, CurrencyConverter, LedgerWriter
from ledger.tests.factories import CurrencyExchangeRateFactory

RATES_DATE = datetime(2020, 1, 1, tzinfo=dt_timezone.utc)


# ==========================================================================
# Party Fixtures
# ==========================================================================


@pytest.fixture
def platform(db):
    return PlatformFactory()


@pytest.fixture
def platform_payout_method(platform):
    """Platform bank account in USD."""
    return PayoutMethodFactory(
        collective=platform,
        type=PayoutMethodType.BANK_ACCOUNT,
        data={"currency": "USD"},
    )


@pytest.fixture
def host(db):
    """USD host with a 10% host fee and no revenue share."""
    return HostFactory(currency="USD", host_fee_percent=10)


@pytest.fixture
def collective(host):
    return CollectiveFactory(host=host, currency="USD")


@pytest.fixture
def contributor(db):
    return CollectiveFactory(type=CollectiveType.USER, currency="USD")


# ==========================================================================
# Service Fixtures
# ==========================================================================


@pytest.fixture
def fx_rates(db):
    """Stored rates: 1 EUR = 1.1 USD, 1 GBP = 1.25 USD."""
    return [
        CurrencyExchangeRateFactory(
            from_currency="EUR", to_currency="USD", rate=1.1, created_at=RATES_DATE
        ),
        CurrencyExchangeRateFactory(
            from_currency="GBP", to_currency="USD", rate=1.25, created_at=RATES_DATE
        ),
    ]


@pytest.fixture
def converter(fx_rates):
    return CurrencyConverter()


@pytest.fixture
def writer(converter, platform):
    return LedgerWriter(converter=converter)


@pytest.fixture
def balances(converter):
    return BalanceService(converter=converter)


# ==========================================================================
# Infrastructure Fixtures
# ==========================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client for distributed lock tests.

    Returns a MagicMock configured so every lock is free.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.eval.return_value = 1

    mocker.patch("ledger.locks.get_redis_connection", return_value=mock_client)
    return mock_client


@pytest.fixture
def media_root(settings, tmp_path):
    """Store settlement attachments in a temporary directory."""
    settings.MEDIA_ROOT = str(tmp_path)
    return tmp_path
