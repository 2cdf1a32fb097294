from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from domain.currency import CurrencyCode, parse_currency_code
from domain.errors import NetworkError
from domain.rates import RatesSnapshot, RateTable, to_finite_decimal

from .http_client import HttpClient
from .rate_sources import RatesSource

logger = logging.getLogger(__name__)

# Binance lists no USD spot books; USDT stands in for it.
DEFAULT_QUOTE_ALIASES: dict[str, str] = {"USD": "USDT"}


class BinanceRatesSource(RatesSource):
    """Spot prices from Binance's public `ticker/price` endpoint; no API key needed."""

    def __init__(
        self,
        *,
        client: HttpClient,
        crypto_codes: Iterable[str] = ("BTC", "ETH", "LTC", "XRP", "ADA"),
        fiat_currencies: Iterable[str] = ("USD", "EUR", "BRL", "GBP", "JPY"),
        quote_aliases: Mapping[str, str] | None = None,
        source_name: str = "binance-ticker-price",
    ) -> None:
        self.client = client
        self.crypto_codes = [parse_currency_code(code) for code in crypto_codes]
        self.fiat_currencies = [parse_currency_code(code) for code in fiat_currencies]
        if not self.crypto_codes:
            raise ValueError("crypto_codes must contain at least one entry")
        if not self.fiat_currencies:
            raise ValueError("fiat_currencies must contain at least one entry")
        aliases = DEFAULT_QUOTE_ALIASES if quote_aliases is None else quote_aliases
        self.quote_aliases = {parse_currency_code(code): alias.upper() for code, alias in aliases.items()}
        self.source_name = source_name

    def fetch_rates(self) -> RatesSnapshot:
        payload = self.client.get("/ticker/price")
        if not isinstance(payload, list):
            raise NetworkError("Binance returned unexpected payload type", payload=payload)

        rates = self._parse_rates(self._prices_by_symbol(payload))
        if not rates:
            raise NetworkError("Binance returned no usable rates")

        return RatesSnapshot(rates=rates, updated_at=datetime.now(timezone.utc), source=self.source_name)

    @staticmethod
    def _prices_by_symbol(payload: list[Any]) -> dict[str, Any]:
        prices: dict[str, Any] = {}
        for item in payload:
            if isinstance(item, dict) and isinstance(item.get("symbol"), str):
                prices[item["symbol"].upper()] = item.get("price")
        return prices

    def _parse_rates(self, prices: Mapping[str, Any]) -> RateTable:
        rates: RateTable = {}
        for crypto in self.crypto_codes:
            for fiat in self.fiat_currencies:
                symbol = f"{crypto}{self._market_code(fiat)}"
                if symbol not in prices:
                    continue
                rate = to_finite_decimal(prices[symbol])
                if rate is None or rate <= 0:
                    logger.warning("Skipping non-positive Binance price %s=%r", symbol, prices[symbol])
                    continue
                rates.setdefault(crypto, {})[fiat] = rate
        return rates

    def _market_code(self, fiat: CurrencyCode) -> str:
        return self.quote_aliases.get(fiat, fiat)


__all__ = ["BinanceRatesSource", "DEFAULT_QUOTE_ALIASES"]
