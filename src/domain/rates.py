from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict

from domain.currency import CurrencyCode, parse_currency_code
from domain.errors import RateUnavailableError

RateTable = dict[CurrencyCode, dict[CurrencyCode, Decimal]]


def to_finite_decimal(value: Any) -> Decimal | None:
    """Return value as a finite Decimal, or None if it is not a usable number.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            return None
    else:
        return None
    return result if result.is_finite() else None


class RateResolution(StrEnum):
    IDENTITY = "identity"
    DIRECT = "direct"
    INVERSE = "inverse"
    BRIDGE = "bridge"


@dataclass(frozen=True)
class ExchangeRate:
    """Multiplier turning one unit of from_code into to_code (1 from = rate to)."""

    from_code: CurrencyCode
    to_code: CurrencyCode
    rate: Decimal
    resolution: RateResolution = RateResolution.DIRECT
    via: CurrencyCode | None = None

    def apply(self, amount: Decimal) -> Decimal:
        return amount * self.rate


@dataclass(frozen=True)
class RateFound:
    rate: ExchangeRate

    def unwrap(self) -> ExchangeRate:
        return self.rate


@dataclass(frozen=True)
class RateNotFound:
    from_code: CurrencyCode
    to_code: CurrencyCode

    def unwrap(self) -> ExchangeRate:
        raise RateUnavailableError(self.from_code, self.to_code)


RateResult = RateFound | RateNotFound


@dataclass(frozen=True)
class RatesSnapshot:
    """Full rate table as fetched from a source, replaced wholesale on refresh."""

    rates: RateTable
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "manual"

    def pair_count(self) -> int:
        return sum(len(quotes) for quotes in self.rates.values())

    def to_payload(self) -> dict[str, Any]:
        return {
            "rates": {
                base: {quote: str(rate) for quote, rate in quotes.items()} for base, quotes in self.rates.items()
            },
            "updated_at": self.updated_at.isoformat(),
            "source": self.source,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RatesSnapshot:
        rates_raw = payload.get("rates")
        if not isinstance(rates_raw, Mapping):
            raise ValueError("rates payload must be a mapping")

        rates: RateTable = {}
        for base_raw, quotes_raw in rates_raw.items():
            if not isinstance(quotes_raw, Mapping):
                raise ValueError(f"quotes for {base_raw} must be a mapping")
            base = parse_currency_code(base_raw)
            for quote_raw, rate_raw in quotes_raw.items():
                rate = to_finite_decimal(rate_raw)
                if rate is None:
                    raise ValueError(f"rate {base_raw}->{quote_raw} is not numeric: {rate_raw!r}")
                rates.setdefault(base, {})[parse_currency_code(quote_raw)] = rate

        updated_raw = payload.get("updated_at")
        updated_at = datetime.fromisoformat(updated_raw) if updated_raw else datetime.now(timezone.utc)
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return cls(rates=rates, updated_at=updated_at, source=str(payload.get("source") or "manual"))


class Conversion(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_currency: CurrencyCode
    to_currency: CurrencyCode
    amount: Decimal
    converted_amount: Decimal
    rate: Decimal
    timestamp: datetime


__all__ = [
    "Conversion",
    "ExchangeRate",
    "RateFound",
    "RateNotFound",
    "RateResolution",
    "RateResult",
    "RateTable",
    "RatesSnapshot",
    "to_finite_decimal",
]
