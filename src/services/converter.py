from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, Overflow
from typing import Any

from domain.errors import InvalidAmountError
from domain.rates import Conversion, ExchangeRate, RateResolution, to_finite_decimal

from .rate_store import RateStore


class Converter:
    def __init__(self, store: RateStore) -> None:
        self.store = store

    def convert(self, amount: Any, from_code: str, to_code: str) -> Decimal | int | float:
        """Convert amount using the resolved rate.

        Same-currency conversions hand back the caller's number as given, so
        `convert(a, A, A) == a` holds for floats too. Strings come back parsed.
        """
        value = self.validate_amount(amount)
        rate = self.store.require(from_code, to_code)
        if rate.resolution is RateResolution.IDENTITY:
            return value if isinstance(amount, str) else amount
        return self._apply(rate, value)

    def quote(self, amount: Any, from_code: str, to_code: str, *, timestamp: datetime | None = None) -> Conversion:
        value = self.validate_amount(amount)
        rate: ExchangeRate = self.store.require(from_code, to_code)
        converted = value if rate.resolution is RateResolution.IDENTITY else self._apply(rate, value)
        return Conversion(
            from_currency=rate.from_code,
            to_currency=rate.to_code,
            amount=value,
            converted_amount=converted,
            rate=rate.rate,
            timestamp=timestamp or datetime.now(timezone.utc),
        )

    @staticmethod
    def validate_amount(amount: Any) -> Decimal:
        value = to_finite_decimal(amount)
        if value is None:
            raise InvalidAmountError(f"Amount must be a finite number, got {amount!r}")
        if value < 0:
            raise InvalidAmountError(f"Amount must be >= 0, got {amount!r}")
        return value

    @staticmethod
    def _apply(rate: ExchangeRate, value: Decimal) -> Decimal:
        try:
            return rate.apply(value)
        except Overflow as exc:
            raise InvalidAmountError(f"Amount {value} is too large to convert to {rate.to_code}") from exc


__all__ = ["Converter"]
