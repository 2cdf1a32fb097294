from __future__ import annotations

from enum import StrEnum
from typing import Any, Iterable, Iterator, NewType

from pydantic import BaseModel, ConfigDict, model_validator

from domain.errors import InvalidInputError, UnsupportedCurrencyError
from utils.formatting import format_amount

CurrencyCode = NewType("CurrencyCode", str)

_CRYPTO_KEYWORDS = ("crypto", "token", "coin")
_WELL_KNOWN_CRYPTO_CODES = frozenset({"BTC", "ETH", "USDT", "BNB"})


def parse_currency_code(raw: Any) -> CurrencyCode:
    """Canonicalize a raw currency code (strip + uppercase) or raise InvalidInputError."""
    if not isinstance(raw, str):
        raise InvalidInputError(f"Currency code must be a string, got {type(raw).__name__}")
    code = raw.strip().upper()
    if not code:
        raise InvalidInputError("Currency code must be non-empty")
    if not code.isalnum():
        raise InvalidInputError(f"Currency code must be alphanumeric: {raw!r}")
    return CurrencyCode(code)


class CurrencyType(StrEnum):
    CRYPTO = "crypto"
    FIAT = "fiat"


DEFAULT_PRECISION = {CurrencyType.CRYPTO: 8, CurrencyType.FIAT: 2}


class Currency(BaseModel):
    """A currency or crypto asset known to the converter.

    Missing fields are filled in before validation: the name falls back to the
    code, and precision falls back to 8 decimals for crypto, 2 for fiat.
    """

    model_config = ConfigDict(frozen=True)

    code: CurrencyCode
    name: str
    symbol: str = ""
    type: CurrencyType = CurrencyType.FIAT
    precision: int

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        values = dict(data)
        code = parse_currency_code(values.get("code"))
        currency_type = CurrencyType(str(values.get("type") or CurrencyType.FIAT).lower())
        values["code"] = code
        values["type"] = currency_type
        values["name"] = values.get("name") or code
        values["symbol"] = values.get("symbol") or ""
        if values.get("precision") is None:
            values["precision"] = DEFAULT_PRECISION[currency_type]
        return values

    @model_validator(mode="after")
    def _validate_precision(self) -> Currency:
        if self.precision < 0:
            raise ValueError("precision must be >= 0")
        return self

    @property
    def is_crypto(self) -> bool:
        return self.type is CurrencyType.CRYPTO

    @property
    def is_fiat(self) -> bool:
        return self.type is CurrencyType.FIAT

    def format_value(self, value: Any, *, precision: int | None = None) -> str:
        return f"{self.symbol}{format_amount(value, self.precision if precision is None else precision)}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Currency):
            return NotImplemented
        return self.code == other.code

    def __hash__(self) -> int:
        return hash(self.code)

    def __str__(self) -> str:
        return f"{self.code} ({self.name})"

    @classmethod
    def from_api_data(cls, payload: dict[str, Any]) -> Currency:
        """Normalize the different shapes rate providers use to describe a currency."""
        code = payload.get("code") or payload.get("id") or payload.get("symbol") or ""
        name = payload.get("name") or payload.get("fullName") or payload.get("currency_name") or ""

        raw_type = payload.get("type")
        if raw_type:
            currency_type = str(raw_type).lower()
        else:
            haystack = f"{name} {code}".lower()
            is_crypto = any(keyword in haystack for keyword in _CRYPTO_KEYWORDS)
            is_crypto = is_crypto or str(code).upper() in _WELL_KNOWN_CRYPTO_CODES
            currency_type = CurrencyType.CRYPTO if is_crypto else CurrencyType.FIAT

        # Providers report 0 or garbage when they don't know; fall back to the type default.
        precision: int | None
        try:
            precision = int(payload.get("precision") or 0) or None
        except (TypeError, ValueError):
            precision = None

        return cls(
            code=code,
            name=name,
            symbol=payload.get("symbol") or payload.get("currency_symbol") or "",
            type=currency_type,
            precision=precision,
        )


class CurrencyRegistry:
    """Set of currencies the converter accepts, keyed by validated code."""

    def __init__(self, currencies: Iterable[Currency] = ()) -> None:
        self._by_code: dict[CurrencyCode, Currency] = {}
        for currency in currencies:
            self.register(currency)

    def register(self, currency: Currency) -> None:
        self._by_code[currency.code] = currency

    def require(self, raw: Any) -> CurrencyCode:
        code = parse_currency_code(raw)
        if code not in self._by_code:
            raise UnsupportedCurrencyError(code)
        return code

    def get(self, raw: Any) -> Currency | None:
        try:
            code = parse_currency_code(raw)
        except InvalidInputError:
            return None
        return self._by_code.get(code)

    def codes(self) -> list[CurrencyCode]:
        return list(self._by_code)

    def cryptos(self) -> list[Currency]:
        return [currency for currency in self._by_code.values() if currency.is_crypto]

    def fiats(self) -> list[Currency]:
        return [currency for currency in self._by_code.values() if currency.is_fiat]

    def __contains__(self, raw: object) -> bool:
        return self.get(raw) is not None

    def __iter__(self) -> Iterator[Currency]:
        return iter(self._by_code.values())

    def __len__(self) -> int:
        return len(self._by_code)


DEFAULT_CURRENCIES: tuple[dict[str, Any], ...] = (
    {"code": "BTC", "name": "Bitcoin", "symbol": "₿", "type": "crypto"},
    {"code": "ETH", "name": "Ethereum", "symbol": "Ξ", "type": "crypto"},
    {"code": "XRP", "name": "Ripple", "type": "crypto"},
    {"code": "LTC", "name": "Litecoin", "symbol": "Ł", "type": "crypto"},
    {"code": "ADA", "name": "Cardano", "type": "crypto"},
    {"code": "USDT", "name": "Tether", "type": "crypto"},
    {"code": "BNB", "name": "BNB", "type": "crypto"},
    {"code": "USD", "name": "US Dollar", "symbol": "$"},
    {"code": "EUR", "name": "Euro", "symbol": "€"},
    {"code": "GBP", "name": "British Pound", "symbol": "£"},
    {"code": "BRL", "name": "Brazilian Real", "symbol": "R$"},
    {"code": "JPY", "name": "Japanese Yen", "symbol": "¥"},
    {"code": "PLN", "name": "Polish Zloty", "symbol": "zł"},
)


def default_registry() -> CurrencyRegistry:
    return CurrencyRegistry(Currency.model_validate(data) for data in DEFAULT_CURRENCIES)


__all__ = [
    "Currency",
    "CurrencyCode",
    "CurrencyRegistry",
    "CurrencyType",
    "DEFAULT_CURRENCIES",
    "default_registry",
    "parse_currency_code",
]
