from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.errors import InvalidRateError, RateUnavailableError, UnsupportedCurrencyError
from domain.rates import RateFound, RateNotFound, RateResolution, RatesSnapshot
from services.rate_store import RateStore


def test_identity_rate_needs_no_data(store: RateStore) -> None:
    result = store.get("btc", "BTC")

    assert isinstance(result, RateFound)
    assert result.rate.rate == Decimal("1")
    assert result.rate.resolution is RateResolution.IDENTITY


def test_direct_rate_wins_over_inverse(store: RateStore) -> None:
    store.set("BTC", "USD", "50000")
    store.set("USD", "BTC", "0.00003")

    rate = store.require("BTC", "USD")
    assert rate.rate == Decimal("50000")
    assert rate.resolution is RateResolution.DIRECT


def test_inverse_rate_is_reciprocal(store: RateStore) -> None:
    store.set("BTC", "USD", "50000")

    rate = store.require("usd", "btc")
    assert rate.resolution is RateResolution.INVERSE
    assert rate.rate == Decimal("0.00002")


def test_bridge_through_base_currency(store: RateStore) -> None:
    store.set("BTC", "USD", "50000")
    store.set("EUR", "USD", "1.25")

    rate = store.require("BTC", "EUR")
    assert rate.resolution is RateResolution.BRIDGE
    assert rate.via == "USD"
    assert rate.rate == Decimal("40000")


def test_bridge_uses_direct_legs(store: RateStore) -> None:
    store.set("BTC", "USD", "50000")
    store.set("USD", "GBP", "0.8")

    assert store.require("BTC", "GBP").rate == Decimal("40000.0")


def test_missing_rate_is_reported_not_raised(store: RateStore) -> None:
    store.set("BTC", "USD", "50000")

    result = store.get("BTC", "EUR")
    assert result == RateNotFound("BTC", "EUR")
    with pytest.raises(RateUnavailableError):
        store.require("BTC", "EUR")


def test_unknown_currency_is_rejected(store: RateStore) -> None:
    with pytest.raises(UnsupportedCurrencyError):
        store.get("BTC", "XYZ")


@pytest.mark.parametrize(
    ("from_code", "to_code", "rate"),
    [
        ("BTC", "USD", "0"),
        ("BTC", "USD", "-5"),
        ("BTC", "USD", "NaN"),
        ("BTC", "USD", float("inf")),
        ("BTC", "USD", "many"),
        ("BTC", "BTC", "1"),
    ],
)
def test_set_rejects_invalid_rates_and_leaves_store_untouched(
    store: RateStore, from_code: str, to_code: str, rate: object
) -> None:
    store.set("BTC", "USD", "50000")
    before = store.all()

    with pytest.raises(InvalidRateError):
        store.set(from_code, to_code, rate)

    assert store.all() == before


def test_all_returns_a_copy(store: RateStore) -> None:
    store.set("BTC", "USD", "50000")

    table = store.all()
    table["BTC"]["USD"] = Decimal("1")

    assert store.require("BTC", "USD").rate == Decimal("50000")


def test_replace_is_all_or_nothing(store: RateStore) -> None:
    store.set("BTC", "USD", "50000")
    bad = RatesSnapshot(rates={"ETH": {"USD": Decimal("3000")}, "XRP": {"USD": Decimal("-1")}})

    with pytest.raises(InvalidRateError):
        store.replace(bad)

    assert store.all() == {"BTC": {"USD": Decimal("50000")}}


def test_replace_and_snapshot(store: RateStore) -> None:
    updated_at = datetime(2025, 5, 1, tzinfo=timezone.utc)
    store.replace(RatesSnapshot(rates={"ETH": {"EUR": Decimal("2750")}}, updated_at=updated_at, source="test"))

    snapshot = store.snapshot()
    assert snapshot.rates == {"ETH": {"EUR": Decimal("2750")}}
    assert snapshot.updated_at == updated_at
    assert snapshot.source == "test"
    assert store.updated_at == updated_at
    with pytest.raises(RateUnavailableError):
        store.require("BTC", "EUR")


def test_custom_base_currency(store: RateStore) -> None:
    eur_based = RateStore(registry=store.registry, base_currency="eur")
    eur_based.set("BTC", "EUR", "50000")
    eur_based.set("GBP", "EUR", "1.25")

    assert eur_based.require("BTC", "GBP").rate == Decimal("40000")
