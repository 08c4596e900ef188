"""
Fixer-compatible FX rates API adapter.

Features:
- One HTTP call answers every target symbol for a base currency and date
- Configurable timeout on every call
- Provider and transport errors translated to FxRateUnavailable
- Structured logging with timing metrics

Configuration (via settings):
- FIXER_ACCESS_KEY: API access key (the adapter is unused when empty)
- FX_API_URL: Base URL (default: https://data.fixer.io/api)
- FX_API_TIMEOUT_SECONDS: Request timeout (default: 10)

Usage:
    from ledger.adapters import FixerAdapter

    result = FixerAdapter.fetch_rates("EUR", ["USD", "GBP"], as_of=date(2026, 9, 30))
    result.rates["USD"]  # 1.0832
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import httpx
from django.conf import settings

from ledger.exceptions import FxRateUnavailable


@dataclass
class FxRatesResult:
    """
    Rates for one base currency on one date.

    Attributes:
        base: Base currency
        date: Date the provider reports the rates for
        rates: Target currency -> rate (1 base = rate target)
        raw_response: Full provider response (for debugging)
    """

    base: str
    date: str
    rates: dict[str, float] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


class FixerAdapter:
    """
    Adapter for the Fixer FX rates API.

    All methods are class methods; no instance state is kept.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def is_configured() -> bool:
        return bool(getattr(settings, "FIXER_ACCESS_KEY", ""))

    @classmethod
    def fetch_rates(
        cls,
        base: str,
        symbols: list[str],
        as_of: date | None = None,
    ) -> FxRatesResult:
        """
        Fetch rates from `base` to every currency in `symbols`.

        Args:
            base: Base currency (ISO 4217)
            symbols: Target currencies
            as_of: Historical date; None requests the latest rates

        Returns:
            FxRatesResult with one rate per requested symbol

        Raises:
            FxRateUnavailable: Transport error, provider error, or a
                requested symbol missing from the response
        """
        logger = cls.get_logger()
        endpoint = as_of.isoformat() if as_of else "latest"
        url = f"{settings.FX_API_URL.rstrip('/')}/{endpoint}"
        params = {
            "access_key": settings.FIXER_ACCESS_KEY,
            "base": base,
            "symbols": ",".join(sorted(set(symbols))),
        }

        log_context = {
            "operation": "fetch_rates",
            "base": base,
            "symbols": params["symbols"],
            "date": endpoint,
        }

        start_time = time.time()
        logger.info("Starting FX provider call", extra=log_context)

        try:
            response = httpx.get(
                url,
                params=params,
                timeout=getattr(settings, "FX_API_TIMEOUT_SECONDS", 10.0),
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "FX provider timed out",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise FxRateUnavailable(
                f"FX provider timed out fetching {base} rates",
                details={**log_context, "error": str(e)},
            ) from e
        except httpx.HTTPError as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "FX provider request failed",
                extra={**log_context, "duration_ms": duration_ms, "error": str(e)},
            )
            raise FxRateUnavailable(
                f"FX provider request failed for {base} rates",
                details={**log_context, "error": str(e)},
            ) from e
        except ValueError as e:
            logger.error("FX provider returned invalid JSON", extra=log_context)
            raise FxRateUnavailable(
                "FX provider returned an invalid response",
                details=log_context,
            ) from e

        duration_ms = (time.time() - start_time) * 1000

        if not payload.get("success", False):
            error = payload.get("error") or {}
            logger.error(
                "FX provider returned an error",
                extra={**log_context, "duration_ms": duration_ms, "provider_error": error},
            )
            raise FxRateUnavailable(
                f"FX provider error: {error.get('info') or error.get('type') or 'unknown'}",
                details={**log_context, "provider_error": error},
            )

        rates = {code: float(rate) for code, rate in (payload.get("rates") or {}).items()}
        missing = [symbol for symbol in symbols if symbol not in rates]
        if missing:
            logger.error(
                "FX provider response is missing symbols",
                extra={**log_context, "missing": missing},
            )
            raise FxRateUnavailable(
                f"No {base} rate for {', '.join(missing)}",
                details={**log_context, "missing": missing},
            )

        logger.info(
            "FX provider call completed",
            extra={**log_context, "duration_ms": duration_ms},
        )

        return FxRatesResult(
            base=payload.get("base", base),
            date=payload.get("date", endpoint),
            rates=rates,
            raw_response=payload,
        )
