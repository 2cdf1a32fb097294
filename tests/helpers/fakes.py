from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from db.key_value import MemoryStorage
from domain.errors import NetworkError, PersistenceError
from domain.rates import RatesSnapshot


@dataclass
class FakeClock:
    """Monotonic float clock for TTL tests; call it like time.time."""

    now: float = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class FakeDateTimeClock:
    now: datetime = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FailingStorage(MemoryStorage):
    """Memory storage whose reads and/or writes blow up on demand."""

    def __init__(self, *, fail_reads: bool = False, fail_writes: bool = True) -> None:
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    def get(self, key: str) -> Any | None:
        if self.fail_reads:
            raise PersistenceError(f"read of {key} failed")
        return super().get(key)

    def set(self, key: str, value: Any) -> None:
        if self.fail_writes:
            raise PersistenceError(f"write of {key} failed")
        super().set(key, value)

    def delete(self, key: str) -> None:
        if self.fail_writes:
            raise PersistenceError(f"delete of {key} failed")
        super().delete(key)

    def keys(self, prefix: str = "") -> list[str]:
        if self.fail_reads:
            raise PersistenceError("listing keys failed")
        return super().keys(prefix)


class FailingRatesSource:
    def __init__(self, message: str = "upstream down", *, error_type: type[NetworkError] = NetworkError) -> None:
        self.message = message
        self.error_type = error_type
        self.fetch_count = 0

    def fetch_rates(self) -> RatesSnapshot:
        self.fetch_count += 1
        raise self.error_type(self.message)
