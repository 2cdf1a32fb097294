from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from domain.currency import CurrencyCode, CurrencyRegistry, default_registry
from domain.errors import InvalidRateError
from domain.rates import (
    ExchangeRate,
    RateFound,
    RateNotFound,
    RateResolution,
    RateResult,
    RatesSnapshot,
    RateTable,
    to_finite_decimal,
)

logger = logging.getLogger(__name__)

ONE = Decimal("1")


class RateStore:
    """In-memory rate table with direct, inverse and base-currency bridge lookup.

    A stored pair (A, B) = r means one unit of A is worth r units of B.
    """

    def __init__(
        self,
        *,
        registry: CurrencyRegistry | None = None,
        base_currency: str = "USD",
    ) -> None:
        self.registry = registry or default_registry()
        self.base_currency = self.registry.require(base_currency)
        self._rates: RateTable = {}
        self._updated_at: datetime | None = None
        self._source = "manual"

    @property
    def updated_at(self) -> datetime | None:
        return self._updated_at

    def is_empty(self) -> bool:
        return not self._rates

    def get(self, from_code: str, to_code: str) -> RateResult:
        base = self.registry.require(from_code)
        quote = self.registry.require(to_code)

        if base == quote:
            return RateFound(ExchangeRate(base, quote, ONE, RateResolution.IDENTITY))

        direct = self._direct_or_inverse(base, quote)
        if direct is not None:
            return RateFound(direct)

        bridge = self.base_currency
        if bridge not in (base, quote):
            first_leg = self._direct_or_inverse(base, bridge)
            second_leg = self._direct_or_inverse(bridge, quote)
            if first_leg is not None and second_leg is not None:
                rate = first_leg.rate * second_leg.rate
                return RateFound(ExchangeRate(base, quote, rate, RateResolution.BRIDGE, via=bridge))

        return RateNotFound(base, quote)

    def require(self, from_code: str, to_code: str) -> ExchangeRate:
        return self.get(from_code, to_code).unwrap()

    def set(self, from_code: str, to_code: str, rate: Any) -> None:
        base = self.registry.require(from_code)
        quote = self.registry.require(to_code)
        value = self._validate_rate(base, quote, rate)
        self._rates.setdefault(base, {})[quote] = value
        self._updated_at = datetime.now(timezone.utc)

    def all(self) -> RateTable:
        return {base: dict(quotes) for base, quotes in self._rates.items()}

    def replace(self, snapshot: RatesSnapshot) -> None:
        rates: RateTable = {}
        for base_raw, quotes in snapshot.rates.items():
            base = self.registry.require(base_raw)
            for quote_raw, rate in quotes.items():
                quote = self.registry.require(quote_raw)
                rates.setdefault(base, {})[quote] = self._validate_rate(base, quote, rate)

        self._rates = rates
        self._updated_at = snapshot.updated_at
        self._source = snapshot.source
        logger.debug("Rate table replaced from %s with %d pairs", snapshot.source, snapshot.pair_count())

    def snapshot(self) -> RatesSnapshot:
        return RatesSnapshot(
            rates=self.all(),
            updated_at=self._updated_at or datetime.now(timezone.utc),
            source=self._source,
        )

    def _direct_or_inverse(self, base: CurrencyCode, quote: CurrencyCode) -> ExchangeRate | None:
        direct = self._rates.get(base, {}).get(quote)
        if direct is not None:
            return ExchangeRate(base, quote, direct, RateResolution.DIRECT)
        reverse = self._rates.get(quote, {}).get(base)
        if reverse is not None:
            return ExchangeRate(base, quote, ONE / reverse, RateResolution.INVERSE)
        return None

    @staticmethod
    def _validate_rate(base: CurrencyCode, quote: CurrencyCode, rate: Any) -> Decimal:
        if base == quote:
            raise InvalidRateError(f"Cannot store a rate from {base} to itself")
        value = to_finite_decimal(rate)
        if value is None:
            raise InvalidRateError(f"Rate {base}->{quote} must be a finite number, got {rate!r}")
        if value <= 0:
            raise InvalidRateError(f"Rate {base}->{quote} must be > 0, got {rate!r}")
        return value


__all__ = ["RateStore"]
