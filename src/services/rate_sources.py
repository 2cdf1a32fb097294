from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Mapping, Protocol, Sequence

from domain.currency import parse_currency_code
from domain.errors import NetworkError, NetworkTimeoutError
from domain.rates import RatesSnapshot, RateTable

logger = logging.getLogger(__name__)

# Offline defaults; quoted as "1 crypto = N fiat".
DEFAULT_STATIC_RATES: dict[str, dict[str, str]] = {
    "BTC": {"USD": "60000", "EUR": "55000", "GBP": "47000"},
    "ETH": {"USD": "3000", "EUR": "2750", "GBP": "2350"},
    "XRP": {"USD": "0.5", "EUR": "0.46", "GBP": "0.39"},
    "LTC": {"USD": "80", "EUR": "73", "GBP": "62"},
    "ADA": {"USD": "0.4", "EUR": "0.37", "GBP": "0.31"},
}


class RatesSource(Protocol):
    def fetch_rates(self) -> RatesSnapshot: ...


class StaticRatesSource(RatesSource):
    """Serves a fixed rate table; used offline and as a stand-in for the live provider."""

    def __init__(
        self,
        rates: Mapping[str, Mapping[str, Decimal | str | int]] | None = None,
        *,
        source_name: str = "static",
    ) -> None:
        raw = DEFAULT_STATIC_RATES if rates is None else rates
        table: RateTable = {}
        for base, quotes in raw.items():
            for quote, rate in quotes.items():
                table.setdefault(parse_currency_code(base), {})[parse_currency_code(quote)] = Decimal(str(rate))
        self._rates = table
        self.source_name = source_name
        self.fetch_count = 0

    def fetch_rates(self) -> RatesSnapshot:
        self.fetch_count += 1
        return RatesSnapshot(
            rates={base: dict(quotes) for base, quotes in self._rates.items()},
            updated_at=datetime.now(timezone.utc),
            source=self.source_name,
        )


class FallbackRatesSource(RatesSource):
    """Asks each source in priority order and returns the first snapshot that arrives.

    Only network errors move on to the next source. When every source fails the
    error is a NetworkTimeoutError if all of them timed out, a NetworkError otherwise.
    """

    def __init__(self, sources: Sequence[RatesSource]) -> None:
        if not sources:
            raise ValueError("sources must contain at least one entry")
        self.sources = list(sources)

    def fetch_rates(self) -> RatesSnapshot:
        failures: list[NetworkError] = []
        for source in self.sources:
            try:
                return source.fetch_rates()
            except NetworkError as exc:
                logger.warning("Rates source %s failed: %s", _source_label(source), exc)
                failures.append(exc)

        summary = "; ".join(f"{_source_label(source)}: {exc}" for source, exc in zip(self.sources, failures))
        all_timed_out = all(isinstance(exc, NetworkTimeoutError) for exc in failures)
        error_type = NetworkTimeoutError if all_timed_out else NetworkError
        raise error_type(f"All rate sources failed ({summary})") from failures[-1]


def _source_label(source: RatesSource) -> str:
    return getattr(source, "source_name", type(source).__name__)


__all__ = ["DEFAULT_STATIC_RATES", "FallbackRatesSource", "RatesSource", "StaticRatesSource"]
