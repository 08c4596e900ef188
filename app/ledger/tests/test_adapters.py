"""
Tests for the Fixer FX rates adapter.

httpx is mocked; no network calls are made.
"""

from datetime import date

import httpx
import pytest

from ledger.adapters import FixerAdapter
from ledger.exceptions import FxRateUnavailable


@pytest.fixture
def fixer_settings(settings):
    settings.FIXER_ACCESS_KEY = "test-key"
    settings.FX_API_URL = "https://fx.example.com/api/"
    settings.FX_API_TIMEOUT_SECONDS = 3.0
    return settings


@pytest.fixture
def mock_get(mocker, fixer_settings):
    return mocker.patch("ledger.adapters.fixer_adapter.httpx.get")


def provider_response(mocker, payload):
    response = mocker.MagicMock()
    response.json.return_value = payload
    return response


class TestIsConfigured:
    def test_configured_with_key(self, fixer_settings):
        assert FixerAdapter.is_configured() is True

    def test_not_configured_without_key(self, settings):
        settings.FIXER_ACCESS_KEY = ""

        assert FixerAdapter.is_configured() is False


class TestFetchRates:
    def test_latest_rates(self, mocker, mock_get):
        mock_get.return_value = provider_response(
            mocker,
            {"success": True, "base": "EUR", "date": "2026-10-17", "rates": {"USD": 1.0832, "GBP": 0.86}},
        )

        result = FixerAdapter.fetch_rates("EUR", ["USD", "GBP"])

        mock_get.assert_called_once_with(
            "https://fx.example.com/api/latest",
            params={"access_key": "test-key", "base": "EUR", "symbols": "GBP,USD"},
            timeout=3.0,
        )
        assert result.base == "EUR"
        assert result.rates == {"USD": 1.0832, "GBP": 0.86}

    def test_historical_rates_use_date_endpoint(self, mocker, mock_get):
        mock_get.return_value = provider_response(
            mocker,
            {"success": True, "base": "EUR", "date": "2026-09-30", "rates": {"USD": 1.07}},
        )

        result = FixerAdapter.fetch_rates("EUR", ["USD"], as_of=date(2026, 9, 30))

        assert mock_get.call_args.args[0] == "https://fx.example.com/api/2026-09-30"
        assert result.date == "2026-09-30"

    def test_timeout(self, mock_get):
        mock_get.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(FxRateUnavailable) as exc_info:
            FixerAdapter.fetch_rates("EUR", ["USD"])

        assert "timed out" in exc_info.value.message

    def test_transport_error(self, mock_get):
        mock_get.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(FxRateUnavailable):
            FixerAdapter.fetch_rates("EUR", ["USD"])

    def test_invalid_json(self, mocker, mock_get):
        response = mocker.MagicMock()
        response.json.side_effect = ValueError("Expecting value")
        mock_get.return_value = response

        with pytest.raises(FxRateUnavailable):
            FixerAdapter.fetch_rates("EUR", ["USD"])

    def test_provider_error(self, mocker, mock_get):
        mock_get.return_value = provider_response(
            mocker,
            {"success": False, "error": {"code": 101, "type": "invalid_access_key"}},
        )

        with pytest.raises(FxRateUnavailable) as exc_info:
            FixerAdapter.fetch_rates("EUR", ["USD"])

        assert "invalid_access_key" in exc_info.value.message

    def test_missing_symbol(self, mocker, mock_get):
        mock_get.return_value = provider_response(
            mocker,
            {"success": True, "base": "EUR", "rates": {"USD": 1.07}},
        )

        with pytest.raises(FxRateUnavailable) as exc_info:
            FixerAdapter.fetch_rates("EUR", ["USD", "JPY"])

        assert exc_info.value.details["missing"] == ["JPY"]
