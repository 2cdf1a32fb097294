from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from db.key_value import KeyValueStorage, StorageKey
from db.repositories import ConversionHistory
from domain.errors import NetworkError, PersistenceError
from domain.rates import Conversion, RatesSnapshot, RateTable

from .cache import TtlCache
from .converter import Converter
from .rate_sources import RatesSource
from .rate_store import RateStore

logger = logging.getLogger(__name__)

CURRENT_RATES_KEY = "current_rates"
REFRESH_BACKOFF_KEY = "rates_refresh_backoff"
DEFAULT_FAILURE_BACKOFF_SECONDS = 60.0


class RateService:
    """Keeps the rate store populated and runs conversions against it.

    Fresh rates come from the cache while it holds a current entry, otherwise from
    the source. When the source fails, the last rates saved to storage are used
    and the source is left alone for `failure_backoff` seconds unless forced.
    """

    def __init__(
        self,
        *,
        source: RatesSource,
        store: RateStore,
        cache: TtlCache,
        storage: KeyValueStorage,
        history: ConversionHistory | None = None,
        cache_ttl: float | None = None,
        failure_backoff: float = DEFAULT_FAILURE_BACKOFF_SECONDS,
    ) -> None:
        self.source = source
        self.store = store
        self.cache = cache
        self.storage = storage
        self.history = history
        self.cache_ttl = cache_ttl
        self.failure_backoff = failure_backoff
        self.converter = Converter(store)

    @property
    def is_stale(self) -> bool:
        return not self.cache.has(CURRENT_RATES_KEY)

    @property
    def last_updated(self) -> datetime | None:
        return self.store.updated_at

    def refresh(self, force: bool = False) -> RatesSnapshot:
        if not force:
            cached = self.cache.get(CURRENT_RATES_KEY)
            if cached is not None and (not self.store.is_empty() or self._load_payload(cached, origin="cache")):
                return self.store.snapshot()
            if self.cache.has(REFRESH_BACKOFF_KEY) and (not self.store.is_empty() or self.load_last_known()):
                logger.debug("Rate source failed recently; keeping rates from %s", self.store.updated_at)
                return self.store.snapshot()

        try:
            fetched = self.source.fetch_rates()
        except NetworkError:
            if not self.store.is_empty() or self.load_last_known():
                self.cache.set(REFRESH_BACKOFF_KEY, True, self.failure_backoff)
                logger.warning(
                    "Rate refresh failed; serving rates from %s",
                    self.store.updated_at.isoformat() if self.store.updated_at else "unknown time",
                    exc_info=True,
                )
                return self.store.snapshot()
            raise

        snapshot = self._known_only(fetched)
        self.store.replace(snapshot)
        payload = snapshot.to_payload()
        self.cache.set(CURRENT_RATES_KEY, payload, self.cache_ttl)
        self.cache.delete(REFRESH_BACKOFF_KEY)
        self._save_last_known(payload)
        logger.info("Refreshed %d rates from %s", snapshot.pair_count(), snapshot.source)
        return snapshot

    def snapshot(self) -> RatesSnapshot:
        return self.store.snapshot()

    def convert(self, amount: Any, from_code: str, to_code: str, *, record: bool = True) -> Conversion:
        if self.store.is_empty():
            self.refresh()
        elif self.is_stale:
            try:
                self.refresh()
            except NetworkError:
                logger.warning("Converting with stale rates after failed refresh", exc_info=True)

        conversion = self.converter.quote(amount, from_code, to_code)
        if record and self.history is not None and conversion.from_currency != conversion.to_currency:
            self.history.record(conversion)
        return conversion

    def load_last_known(self) -> bool:
        try:
            payload = self.storage.get(StorageKey.LAST_RATES)
        except PersistenceError:
            logger.warning("Failed to read last known rates", exc_info=True)
            return False
        if payload is None:
            return False
        return self._load_payload(payload, origin="last known rates")

    def clear_cache(self) -> None:
        self.cache.delete(CURRENT_RATES_KEY)

    def _load_payload(self, payload: Any, *, origin: str) -> bool:
        try:
            snapshot = RatesSnapshot.from_payload(payload)
            self.store.replace(self._known_only(snapshot))
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring unusable rates from %s: %s", origin, exc)
            return False
        logger.info("Loaded %d rates from %s", snapshot.pair_count(), origin)
        return True

    def _save_last_known(self, payload: dict[str, Any]) -> None:
        try:
            self.storage.set(StorageKey.LAST_RATES, payload)
        except PersistenceError:
            logger.warning("Failed to persist last known rates", exc_info=True)

    def _known_only(self, snapshot: RatesSnapshot) -> RatesSnapshot:
        registry = self.store.registry
        rates: RateTable = {}
        dropped = 0
        for base, quotes in snapshot.rates.items():
            for quote, rate in quotes.items():
                if base in registry and quote in registry and base != quote:
                    rates.setdefault(base, {})[quote] = rate
                else:
                    dropped += 1
        if dropped:
            logger.warning("Dropped %d rates for currencies outside the registry", dropped)
        return RatesSnapshot(rates=rates, updated_at=snapshot.updated_at, source=snapshot.source)


__all__ = ["CURRENT_RATES_KEY", "DEFAULT_FAILURE_BACKOFF_SECONDS", "REFRESH_BACKOFF_KEY", "RateService"]
