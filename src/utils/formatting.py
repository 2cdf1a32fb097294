from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

NOT_AVAILABLE = "N/A"


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def format_decimal(value: Decimal) -> str:
    quantized = value.normalize()
    # Avoid scientific notation for integers.
    if quantized == quantized.to_integral():
        return f"{quantized:.0f}"
    return format(quantized, "f")


def format_amount(value: Any, precision: int) -> str:
    amount = _as_decimal(value)
    if amount is None:
        return NOT_AVAILABLE
    step = Decimal(1).scaleb(-precision)
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus the requested places.
        ctx.prec = max(ctx.prec, amount.adjusted() + precision + 2)
        try:
            rounded = amount.quantize(step, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            return NOT_AVAILABLE
    return f"{rounded:,.{precision}f}"


def format_rate(value: Any, places: int = 6) -> str:
    return format_amount(value, places)


def format_timestamp(value: datetime, *, include_time: bool = True) -> str:
    return value.strftime("%Y-%m-%d %H:%M" if include_time else "%Y-%m-%d")


__all__ = ["NOT_AVAILABLE", "format_amount", "format_decimal", "format_rate", "format_timestamp"]
