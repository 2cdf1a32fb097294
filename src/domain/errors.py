from __future__ import annotations

from typing import Any


class ConverterError(Exception):
    """Base class for every error raised by the converter."""


class InvalidInputError(ConverterError, ValueError):
    """Bad amount, currency code or rate supplied by the caller."""


class InvalidAmountError(InvalidInputError):
    pass


class InvalidRateError(InvalidInputError):
    pass


class UnsupportedCurrencyError(InvalidInputError):
    def __init__(self, code: str) -> None:
        super().__init__(f"Unsupported currency: {code}")
        self.code = code


class RateUnavailableError(ConverterError):
    def __init__(self, from_code: str, to_code: str) -> None:
        super().__init__(f"No conversion rate available for {from_code} to {to_code}")
        self.from_code = from_code
        self.to_code = to_code


class NetworkError(ConverterError):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def is_transient(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class NetworkTimeoutError(NetworkError):
    pass


class PersistenceError(ConverterError):
    pass


__all__ = [
    "ConverterError",
    "InvalidAmountError",
    "InvalidInputError",
    "InvalidRateError",
    "NetworkError",
    "NetworkTimeoutError",
    "PersistenceError",
    "RateUnavailableError",
    "UnsupportedCurrencyError",
]
