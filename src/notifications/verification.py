from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Callable


class VerificationOutcome(StrEnum):
    VERIFIED = "verified"
    MISSING = "missing"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class PendingCode:
    code: str
    expires_at: datetime


class VerificationCodeStore:
    """Six-digit email verification codes, one pending code per address."""

    def __init__(
        self,
        *,
        expiry: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.expiry = expiry
        self._clock = clock
        self._pending: dict[str, PendingCode] = {}

    def issue(self, email: str) -> str:
        code = str(100_000 + secrets.randbelow(900_000))
        self._pending[self._normalize(email)] = PendingCode(code=code, expires_at=self._clock() + self.expiry)
        return code

    def verify(self, email: str, code: str) -> VerificationOutcome:
        key = self._normalize(email)
        pending = self._pending.get(key)
        if pending is None:
            return VerificationOutcome.MISSING
        if self._clock() > pending.expires_at:
            del self._pending[key]
            return VerificationOutcome.EXPIRED
        if not secrets.compare_digest(code.strip(), pending.code):
            return VerificationOutcome.INVALID
        del self._pending[key]
        return VerificationOutcome.VERIFIED

    def discard(self, email: str) -> None:
        self._pending.pop(self._normalize(email), None)

    @staticmethod
    def _normalize(email: str) -> str:
        return email.strip().lower()


__all__ = ["PendingCode", "VerificationCodeStore", "VerificationOutcome"]
