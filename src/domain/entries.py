from __future__ import annotations

import random
import string
import time
from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from domain.currency import CurrencyCode, parse_currency_code
from domain.rates import Conversion

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_entry_id(prefix: str) -> str:
    # Not collision-proof, only needs to be unique within one user's local lists.
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LogEntry(BaseModel):
    id: str | None = None
    timestamp: datetime = Field(default_factory=_utc_now)


class HistoryEntry(LogEntry):
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    amount: Decimal
    converted_amount: Decimal
    rate: Decimal

    @classmethod
    def from_conversion(cls, conversion: Conversion) -> HistoryEntry:
        return cls(
            timestamp=conversion.timestamp,
            from_currency=conversion.from_currency,
            to_currency=conversion.to_currency,
            amount=conversion.amount,
            converted_amount=conversion.converted_amount,
            rate=conversion.rate,
        )


class FavoriteEntry(LogEntry):
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    amount: Decimal

    @field_validator("from_currency", "to_currency", mode="before")
    @classmethod
    def _canonical_code(cls, value: Any) -> CurrencyCode:
        return parse_currency_code(value)

    @model_validator(mode="after")
    def _validate_amount(self) -> FavoriteEntry:
        if self.amount < 0:
            raise ValueError("FavoriteEntry.amount must be >= 0")
        return self


class AuditAction(StrEnum):
    OPPORTUNITY_DETECTED = "opportunity_detected"
    DECISION = "decision"
    RESULT = "result"


class AuditStatus(StrEnum):
    DETECTED = "detected"
    EXECUTING = "executing"
    IGNORED = "ignored"
    COMPLETED = "completed"
    FAILED = "failed"


class AuditLogEntry(LogEntry):
    action: AuditAction
    type: str | None = None
    opportunity_id: str | None = None
    decision: str | None = None
    reason: str | None = None
    success: bool | None = None
    data: dict[str, Any] | None = None
    status: AuditStatus | None = None


class Theme(StrEnum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class UserSettings(BaseModel):
    theme: Theme = Theme.SYSTEM
    default_from: CurrencyCode = CurrencyCode("BTC")
    default_to: CurrencyCode = CurrencyCode("USD")
    default_amount: Decimal = Decimal("1")

    @field_validator("default_from", "default_to", mode="before")
    @classmethod
    def _canonical_code(cls, value: Any) -> CurrencyCode:
        return parse_currency_code(value)


__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "AuditStatus",
    "FavoriteEntry",
    "HistoryEntry",
    "LogEntry",
    "Theme",
    "UserSettings",
    "generate_entry_id",
]
