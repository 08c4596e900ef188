"""
Currency conversion for ledger reads and writes.

A CurrencyConverter instance memoizes every rate it resolves. Create one
per request or per settlement run and pass it down; nothing is cached at
module level, so a new run always sees fresh rates.

Rates come from the Fixer API when FIXER_ACCESS_KEY is configured, and
from stored CurrencyExchangeRate rows otherwise (direct, inverted, or
crossed through USD).

Usage:
    from ledger.services.currency import CurrencyConverter

    converter = CurrencyConverter()
    converter.load_rates([("EUR", "USD", None), ("GBP", "USD", None)])
    converter.convert(10000, "EUR", "USD")  # 10832
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from django.conf import settings

from ledger.adapters import FixerAdapter
from ledger.exceptions import FxRateUnavailable, InvalidCurrency
from ledger.models import CurrencyExchangeRate

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Currency every stored rate can be crossed through
PIVOT_CURRENCY = "USD"


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_day(as_of: date | datetime | None) -> date | None:
    if as_of is None:
        return None
    if isinstance(as_of, datetime):
        return as_of.date()
    return as_of


class CurrencyConverter:
    """
    Date-aware FX conversion with a run-scoped memo.

    Rates are keyed by (from_currency, to_currency, day); a `None` day
    means the latest available rate.
    """

    def __init__(self) -> None:
        self._rates: dict[tuple[str, str, date | None], float] = {}

    # ==========================================================================
    # Validation
    # ==========================================================================

    @staticmethod
    def validate_currency(currency: str) -> str:
        """
        Return the upper-cased currency code.

        Raises:
            InvalidCurrency: Malformed code, or not in SUPPORTED_CURRENCIES
                when that setting is non-empty
        """
        code = (currency or "").upper()
        if len(code) != 3 or not code.isalpha():
            raise InvalidCurrency(
                f"Invalid currency code '{currency}'",
                details={"currency": currency},
            )
        supported = getattr(settings, "SUPPORTED_CURRENCIES", None)
        if supported and code not in supported:
            raise InvalidCurrency(
                f"Currency {code} is not supported",
                details={"currency": code},
            )
        return code

    # ==========================================================================
    # Rates
    # ==========================================================================

    def fx_rate(
        self,
        from_currency: str,
        to_currency: str,
        as_of: date | datetime | None = None,
    ) -> float:
        """
        Rate such that 1 `from_currency` = rate `to_currency`.

        Raises:
            FxRateUnavailable: No rate could be obtained
        """
        from_currency = self.validate_currency(from_currency)
        to_currency = self.validate_currency(to_currency)
        if from_currency == to_currency:
            return 1.0

        key = (from_currency, to_currency, _as_day(as_of))
        if key not in self._rates:
            self.load_rates([key])
        return self._rates[key]

    def load_rates(
        self,
        requests: Iterable[tuple[str, str, date | datetime | None]],
    ) -> None:
        """
        Resolve many rates at once.

        Requests are grouped by (from_currency, day) so the provider is
        called once per base currency and date for all target symbols.
        Already memoized rates are not requested again.
        """
        pending: dict[tuple[str, date | None], set[str]] = defaultdict(set)
        for from_currency, to_currency, as_of in requests:
            from_currency = self.validate_currency(from_currency)
            to_currency = self.validate_currency(to_currency)
            day = _as_day(as_of)
            if from_currency == to_currency or (from_currency, to_currency, day) in self._rates:
                continue
            pending[(from_currency, day)].add(to_currency)

        for (base, day), symbols in pending.items():
            if FixerAdapter.is_configured():
                result = FixerAdapter.fetch_rates(base, sorted(symbols), as_of=day)
                rates = {symbol: result.rates[symbol] for symbol in symbols}
            else:
                rates = self._rates_from_db(base, symbols, day)

            for symbol, rate in rates.items():
                self._rates[(base, symbol, day)] = rate

            logger.debug(
                "Loaded FX rates",
                extra={"base": base, "symbols": sorted(symbols), "date": str(day)},
            )

    def _rates_from_db(
        self,
        base: str,
        symbols: set[str],
        day: date | None,
    ) -> dict[str, float]:
        rates = {}
        for symbol in symbols:
            rate = self._stored_rate(base, symbol, day)
            if rate is None and PIVOT_CURRENCY not in (base, symbol):
                to_pivot = self._stored_rate(base, PIVOT_CURRENCY, day)
                from_pivot = self._stored_rate(PIVOT_CURRENCY, symbol, day)
                if to_pivot is not None and from_pivot is not None:
                    rate = to_pivot * from_pivot
            if rate is None:
                raise FxRateUnavailable(
                    f"No stored FX rate from {base} to {symbol}",
                    details={"from_currency": base, "to_currency": symbol, "date": str(day)},
                )
            rates[symbol] = rate
        return rates

    @staticmethod
    def _stored_rate(from_currency: str, to_currency: str, day: date | None) -> float | None:
        """Latest stored rate on or before `day`, direct or inverted."""
        queryset = CurrencyExchangeRate.objects.all()
        if day is not None:
            end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=dt_timezone.utc)
            queryset = queryset.filter(created_at__lt=end)

        direct = (
            queryset.filter(from_currency=from_currency, to_currency=to_currency)
            .order_by("-created_at")
            .first()
        )
        if direct is not None:
            return direct.rate

        inverse = (
            queryset.filter(from_currency=to_currency, to_currency=from_currency)
            .order_by("-created_at")
            .first()
        )
        if inverse is not None:
            return 1 / inverse.rate
        return None

    # ==========================================================================
    # Conversion
    # ==========================================================================

    def convert_with_residual(
        self,
        amount: int,
        from_currency: str,
        to_currency: str,
        as_of: date | datetime | None = None,
    ) -> tuple[int, Decimal]:
        """
        Convert minor units and return (rounded, residual).

        The residual is `exact - rounded`, always within [-0.5, 0.5].
        """
        rate = self.fx_rate(from_currency, to_currency, as_of=as_of)
        exact = Decimal(amount) * Decimal(str(rate))
        rounded = round_half_up(exact)
        return rounded, exact - rounded

    def convert(
        self,
        amount: int,
        from_currency: str,
        to_currency: str,
        as_of: date | datetime | None = None,
    ) -> int:
        """Convert minor units, rounding half up to the nearest minor unit."""
        rounded, _ = self.convert_with_residual(amount, from_currency, to_currency, as_of=as_of)
        return rounded
