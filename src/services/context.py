from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from config import AppSettings, RatesSourceName
from db.db import init_db
from db.key_value import JsonFileStorage, KeyValueStorage, MemoryStorage, SqliteStorage
from db.repositories import ArbitrageAuditLog, ConversionHistory, Favorites, UserSettingsRepository
from domain.currency import CurrencyRegistry, default_registry
from notifications.email_service import EmailService
from notifications.verification import VerificationCodeStore

from .binance_source import BinanceRatesSource
from .cache import TtlCache
from .coingecko_source import COINGECKO_IDS, CoinGeckoRatesSource
from .http_client import HttpClient
from .rate_service import RateService
from .rate_sources import FallbackRatesSource, RatesSource, StaticRatesSource
from .rate_store import RateStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything one running converter needs, built once and passed around explicitly."""

    settings: AppSettings
    registry: CurrencyRegistry
    storage: KeyValueStorage
    rates: RateService
    history: ConversionHistory
    favorites: Favorites
    audit_log: ArbitrageAuditLog
    user_settings: UserSettingsRepository
    email: EmailService
    verification_codes: VerificationCodeStore


def build_storage(settings: AppSettings) -> KeyValueStorage:
    if settings.storage_backend == "memory":
        return MemoryStorage()
    if settings.storage_backend == "sqlite":
        return SqliteStorage(init_db(settings.storage_dir / "fastcripto.db"))
    return JsonFileStorage(root_dir=settings.storage_dir)


def build_rates_source(settings: AppSettings) -> RatesSource:
    """The configured source, followed by its fallbacks in priority order."""
    names = list(dict.fromkeys([settings.rates_source, *settings.rates_fallback_sources]))
    sources = [_build_named_source(name, settings) for name in names]
    return sources[0] if len(sources) == 1 else FallbackRatesSource(sources)


def _build_named_source(name: RatesSourceName, settings: AppSettings) -> RatesSource:
    if name == "static":
        return StaticRatesSource()
    if name == "binance":
        crypto_ids = [crypto_id.lower() for crypto_id in settings.crypto_ids]
        return BinanceRatesSource(
            client=_http_client(settings, settings.binance_api_base_url),
            crypto_codes=[COINGECKO_IDS[crypto_id] for crypto_id in crypto_ids if crypto_id in COINGECKO_IDS],
            fiat_currencies=settings.fiat_currencies,
        )
    client = _http_client(
        settings,
        settings.rates_api_base_url,
        auth_token_provider=(lambda: settings.rates_api_key) if settings.rates_api_key else None,
    )
    return CoinGeckoRatesSource(
        client=client,
        crypto_ids=settings.crypto_ids,
        fiat_currencies=settings.fiat_currencies,
    )


def _http_client(
    settings: AppSettings,
    base_url: str,
    auth_token_provider: Callable[[], str | None] | None = None,
) -> HttpClient:
    return HttpClient(
        base_url=base_url,
        timeout=settings.http_timeout_seconds,
        retry_attempts=settings.http_retry_attempts,
        retry_backoff_seconds=settings.http_retry_backoff_seconds,
        auth_token_provider=auth_token_provider,
    )


def build_context(
    settings: AppSettings,
    *,
    storage: KeyValueStorage | None = None,
    source: RatesSource | None = None,
    registry: CurrencyRegistry | None = None,
) -> AppContext:
    registry = registry or default_registry()
    storage = storage or build_storage(settings)
    history = ConversionHistory(storage=storage, max_size=settings.history_max_size)
    rate_service = RateService(
        source=source or build_rates_source(settings),
        store=RateStore(registry=registry, base_currency=settings.base_currency),
        cache=TtlCache(default_ttl=settings.rates_cache_ttl_seconds, storage=storage),
        storage=storage,
        history=history,
        cache_ttl=settings.rates_cache_ttl_seconds,
        failure_backoff=settings.rates_failure_backoff_seconds,
    )
    logger.debug("Built context with %s storage and %s rates", settings.storage_backend, settings.rates_source)
    return AppContext(
        settings=settings,
        registry=registry,
        storage=storage,
        rates=rate_service,
        history=history,
        favorites=Favorites(storage=storage, max_size=settings.favorites_max_size),
        audit_log=ArbitrageAuditLog(storage=storage, max_size=settings.audit_log_max_size),
        user_settings=UserSettingsRepository(storage),
        email=EmailService(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.email_from,
            username=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.http_timeout_seconds,
            code_expiry_minutes=settings.verification_code_expiry_minutes,
        ),
        verification_codes=VerificationCodeStore(
            expiry=timedelta(minutes=settings.verification_code_expiry_minutes),
        ),
    )


__all__ = ["AppContext", "build_context", "build_rates_source", "build_storage"]
