from datetime import datetime, timezone
from decimal import Decimal

import pytest

from db.key_value import MemoryStorage, StorageKey
from db.repositories import ArbitrageAuditLog, ConversionHistory, Favorites, UserSettingsRepository
from domain.currency import CurrencyCode
from domain.entries import AuditAction, AuditStatus, Theme, UserSettings
from domain.rates import Conversion
from tests.helpers.fakes import FailingStorage


def _conversion(amount: str, timestamp: datetime | None = None) -> Conversion:
    value = Decimal(amount)
    return Conversion(
        from_currency=CurrencyCode("BTC"),
        to_currency=CurrencyCode("USD"),
        amount=value,
        converted_amount=value * 60000,
        rate=Decimal("60000"),
        timestamp=timestamp or datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def test_history_is_most_recent_first_and_bounded(storage: MemoryStorage) -> None:
    history = ConversionHistory(storage=storage, max_size=3)

    ids = [history.record(_conversion(str(n))) for n in range(1, 5)]

    entries = history.get_all()
    assert [entry.amount for entry in entries] == [Decimal("4"), Decimal("3"), Decimal("2")]
    assert [entry.id for entry in entries] == ids[:0:-1]
    assert history.get(ids[0]) is None
    assert len(storage.get(StorageKey.HISTORY)) == 3


def test_history_limit(storage: MemoryStorage) -> None:
    history = ConversionHistory(storage=storage)
    for n in range(5):
        history.record(_conversion(str(n)))

    assert len(history.get_all(limit=2)) == 2
    assert len(history.get_all(limit=0)) == 5
    assert len(history) == 5


def test_history_is_reloaded_from_storage(storage: MemoryStorage) -> None:
    timestamp = datetime(2025, 2, 3, 4, 5, tzinfo=timezone.utc)
    entry_id = ConversionHistory(storage=storage).record(_conversion("0.25", timestamp))

    reloaded = ConversionHistory(storage=storage).get(entry_id)

    assert reloaded is not None
    assert reloaded.amount == Decimal("0.25")
    assert reloaded.converted_amount == Decimal("15000")
    assert reloaded.timestamp == timestamp
    assert reloaded.id.startswith("conv_")


def test_invalid_stored_entries_are_skipped(storage: MemoryStorage) -> None:
    good = {"id": "fav_1", "from_currency": "BTC", "to_currency": "USD", "amount": "1"}
    storage.set(StorageKey.FAVORITES, [good, {"id": "fav_2", "amount": "x"}])

    favorites = Favorites(storage=storage)

    assert [entry.id for entry in favorites.get_all()] == ["fav_1"]


def test_malformed_payload_starts_empty(storage: MemoryStorage) -> None:
    storage.set(StorageKey.FAVORITES, {"not": "a list"})

    assert len(Favorites(storage=storage)) == 0


def test_remove_and_clear(storage: MemoryStorage) -> None:
    favorites = Favorites(storage=storage)
    first = favorites.save("btc", "usd", Decimal("1"))
    favorites.save("eth", "eur", Decimal("2"))

    assert favorites.remove(first)
    assert not favorites.remove(first)
    assert [entry.from_currency for entry in favorites.get_all()] == ["ETH"]

    favorites.clear()
    assert favorites.get_all() == []
    assert storage.get(StorageKey.FAVORITES) == []


def test_write_failures_keep_entries_in_memory() -> None:
    favorites = Favorites(storage=FailingStorage(fail_reads=True))

    entry_id = favorites.save("BTC", "USD", Decimal("1"))

    assert favorites.get(entry_id) is not None


def test_max_size_must_be_positive(storage: MemoryStorage) -> None:
    with pytest.raises(ValueError):
        Favorites(storage=storage, max_size=0)


def test_audit_log_tracks_opportunity_lifecycle(storage: MemoryStorage) -> None:
    audit = ArbitrageAuditLog(storage=storage)

    opportunity_id = audit.log_opportunity_detected({"pair": "BTC/USD", "spread": "0.4"}, "triangular")
    opportunity = audit.get(opportunity_id)
    assert opportunity is not None
    assert opportunity.action is AuditAction.OPPORTUNITY_DETECTED
    assert opportunity.status is AuditStatus.DETECTED
    assert opportunity.id.startswith("log_")

    audit.log_decision(opportunity_id, "execute", "spread above threshold")
    assert audit.get(opportunity_id).status is AuditStatus.EXECUTING

    audit.log_result(opportunity_id, True, {"profit": "12.5"})
    assert audit.get(opportunity_id).status is AuditStatus.COMPLETED

    assert [entry.action for entry in audit.get_all()] == [
        AuditAction.RESULT,
        AuditAction.DECISION,
        AuditAction.OPPORTUNITY_DETECTED,
    ]
    assert audit.get_by_type("triangular") == [audit.get(opportunity_id)]
    assert audit.get_by_status(AuditStatus.COMPLETED) == [audit.get(opportunity_id)]


def test_audit_log_ignored_and_failed_statuses(storage: MemoryStorage) -> None:
    audit = ArbitrageAuditLog(storage=storage)
    ignored = audit.log_opportunity_detected({}, "simple")
    failed = audit.log_opportunity_detected({}, "simple")

    audit.log_decision(ignored, "ignore", "too small")
    audit.log_decision(failed, "execute", "worth it")
    audit.log_result(failed, False, {"error": "order rejected"})

    assert audit.get(ignored).status is AuditStatus.IGNORED
    assert audit.get(failed).status is AuditStatus.FAILED
    assert audit.get_by_status("ignored") == [audit.get(ignored)]
    assert audit.get_by_type("triangular") == []


def test_audit_status_survives_reload(storage: MemoryStorage) -> None:
    audit = ArbitrageAuditLog(storage=storage)
    opportunity_id = audit.log_opportunity_detected({"pair": "ETH/EUR"}, "simple")
    audit.log_decision(opportunity_id, "execute", "go")

    reloaded = ArbitrageAuditLog(storage=storage).get(opportunity_id)

    assert reloaded is not None
    assert reloaded.status is AuditStatus.EXECUTING
    assert reloaded.data == {"pair": "ETH/EUR"}


def test_user_settings_round_trip(storage: MemoryStorage) -> None:
    repo = UserSettingsRepository(storage)
    assert repo.load() == UserSettings()
    assert repo.theme() is Theme.SYSTEM

    repo.save(UserSettings(theme=Theme.DARK, default_from="eth", default_to="eur", default_amount=Decimal("2")))

    loaded = repo.load()
    assert loaded.theme is Theme.DARK
    assert loaded.default_from == "ETH"
    assert loaded.default_amount == Decimal("2")
    assert storage.get(StorageKey.THEME) == "dark"
    assert repo.theme() is Theme.DARK


def test_user_settings_fall_back_to_defaults(storage: MemoryStorage) -> None:
    storage.set(StorageKey.SETTINGS, {"theme": "neon"})
    storage.set(StorageKey.THEME, "neon")
    repo = UserSettingsRepository(storage)

    assert repo.load() == UserSettings()
    assert repo.theme() is Theme.SYSTEM
