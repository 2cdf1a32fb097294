from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from domain.currency import CurrencyCode, parse_currency_code
from domain.errors import InvalidInputError, NetworkError
from domain.rates import RatesSnapshot, RateTable, to_finite_decimal

from .http_client import HttpClient
from .rate_sources import RatesSource

logger = logging.getLogger(__name__)

# API docs: https://docs.coingecko.com/reference/simple-price
COINGECKO_IDS: dict[str, str] = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "litecoin": "LTC",
    "ripple": "XRP",
    "cardano": "ADA",
    "tether": "USDT",
    "binancecoin": "BNB",
}


class CoinGeckoRatesSource(RatesSource):
    def __init__(
        self,
        *,
        client: HttpClient,
        crypto_ids: Iterable[str] = ("bitcoin", "ethereum", "litecoin", "ripple", "cardano"),
        fiat_currencies: Iterable[str] = ("USD", "EUR", "BRL", "GBP", "JPY"),
        id_to_code: Mapping[str, str] | None = None,
        source_name: str = "coingecko-simple-price",
    ) -> None:
        self.client = client
        self.crypto_ids = [crypto_id.strip().lower() for crypto_id in crypto_ids if crypto_id.strip()]
        self.fiat_currencies = [parse_currency_code(code) for code in fiat_currencies]
        if not self.crypto_ids:
            raise ValueError("crypto_ids must contain at least one entry")
        if not self.fiat_currencies:
            raise ValueError("fiat_currencies must contain at least one entry")
        self.id_to_code = dict(COINGECKO_IDS if id_to_code is None else id_to_code)
        self.source_name = source_name

    def fetch_rates(self) -> RatesSnapshot:
        params = {
            "ids": ",".join(self.crypto_ids),
            "vs_currencies": ",".join(code.lower() for code in self.fiat_currencies),
        }
        payload = self.client.get("/simple/price", params=params)
        if not isinstance(payload, dict):
            raise NetworkError("CoinGecko returned unexpected payload type", payload=payload)

        rates = self._parse_rates(payload)
        if not rates:
            raise NetworkError("CoinGecko returned no usable rates", payload=payload)

        return RatesSnapshot(rates=rates, updated_at=datetime.now(timezone.utc), source=self.source_name)

    def _parse_rates(self, payload: dict[str, Any]) -> RateTable:
        rates: RateTable = {}
        for crypto_id, quotes in payload.items():
            code = self._resolve_code(crypto_id)
            if code is None or not isinstance(quotes, dict):
                logger.warning("Skipping unexpected CoinGecko entry %r", crypto_id)
                continue
            for fiat_raw, rate_raw in quotes.items():
                rate = to_finite_decimal(rate_raw)
                if rate is None or rate <= 0:
                    logger.warning("Skipping non-positive CoinGecko rate %s/%s=%r", crypto_id, fiat_raw, rate_raw)
                    continue
                try:
                    fiat = parse_currency_code(fiat_raw)
                except InvalidInputError:
                    logger.warning("Skipping CoinGecko quote with invalid currency %r", fiat_raw)
                    continue
                rates.setdefault(code, {})[fiat] = rate
        return rates

    def _resolve_code(self, crypto_id: str) -> CurrencyCode | None:
        raw = self.id_to_code.get(crypto_id.lower())
        if raw is None:
            return None
        return parse_currency_code(raw)


__all__ = ["COINGECKO_IDS", "CoinGeckoRatesSource"]
