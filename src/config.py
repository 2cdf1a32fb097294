from __future__ import annotations

from functools import cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


RatesSourceName = Literal["coingecko", "binance", "static"]


class AppSettings(BaseSettings):
    rates_api_base_url: str = "https://api.coingecko.com/api/v3"
    rates_api_key: str | None = None
    crypto_ids: list[str] = ["bitcoin", "ethereum", "litecoin", "ripple", "cardano"]
    fiat_currencies: list[str] = ["USD", "EUR", "BRL", "GBP", "JPY"]
    base_currency: str = "USD"
    rates_source: RatesSourceName = "coingecko"
    rates_fallback_sources: list[RatesSourceName] = ["binance"]
    binance_api_base_url: str = "https://api.binance.com/api/v3"
    rates_cache_ttl_seconds: float = 300.0
    rates_failure_backoff_seconds: float = 60.0

    http_timeout_seconds: float = 30.0
    http_retry_attempts: int = 3
    http_retry_backoff_seconds: float = 0.5

    storage_backend: Literal["json", "sqlite", "memory"] = "json"
    storage_dir: Path = Path(".fastcripto")

    history_max_size: int = 20
    favorites_max_size: int = 50
    audit_log_max_size: int = 100

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    email_from: str = "compliance@fastcripto.com"
    verification_code_expiry_minutes: int = 30

    server_host: str = "127.0.0.1"
    server_port: int = 3000
    static_dir: Path = Path("public")

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()
