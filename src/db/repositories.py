from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from db.key_value import KeyValueStorage, StorageKey
from domain.entries import (
    AuditAction,
    AuditLogEntry,
    AuditStatus,
    FavoriteEntry,
    HistoryEntry,
    LogEntry,
    Theme,
    UserSettings,
    generate_entry_id,
)
from domain.errors import PersistenceError
from domain.rates import Conversion

logger = logging.getLogger(__name__)

EntryT = TypeVar("EntryT", bound=LogEntry)


class BoundedLog(Generic[EntryT]):
    """Most-recent-first list of entries persisted under one storage key.

    Every add prepends and truncates to max_size, so the oldest entries fall off
    the tail. The whole list is written on each change; a failed write is logged
    and the in-memory list stays authoritative.
    """

    def __init__(
        self,
        *,
        storage: KeyValueStorage,
        key: str,
        entry_type: type[EntryT],
        max_size: int,
        id_prefix: str = "entry",
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self._storage = storage
        self.key = key
        self.entry_type = entry_type
        self.max_size = max_size
        self.id_prefix = id_prefix
        self._entries: list[EntryT] = self._load()

    def add(self, entry: EntryT) -> str:
        entry_id = generate_entry_id(self.id_prefix)
        stored = entry.model_copy(update={"id": entry_id})
        self._entries = [stored, *self._entries][: self.max_size]
        self._save()
        return entry_id

    def get_all(self, limit: int | None = None) -> list[EntryT]:
        if limit is not None and limit > 0:
            return list(self._entries[:limit])
        return list(self._entries)

    def get(self, entry_id: str) -> EntryT | None:
        return next((entry for entry in self._entries if entry.id == entry_id), None)

    def remove(self, entry_id: str) -> bool:
        remaining = [entry for entry in self._entries if entry.id != entry_id]
        if len(remaining) == len(self._entries):
            return False
        self._entries = remaining
        self._save()
        return True

    def clear(self) -> None:
        self._entries = []
        self._save()

    def __len__(self) -> int:
        return len(self._entries)

    def _replace(self, entry_id: str, **changes: Any) -> bool:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                self._entries[index] = entry.model_copy(update=changes)
                self._save()
                return True
        return False

    def _load(self) -> list[EntryT]:
        try:
            raw = self._storage.get(self.key)
        except PersistenceError:
            logger.warning("Failed to load %s from storage; starting empty", self.key, exc_info=True)
            return []
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("Ignoring malformed %s payload of type %s", self.key, type(raw).__name__)
            return []

        entries: list[EntryT] = []
        for item in raw:
            try:
                entries.append(self.entry_type.model_validate(item))
            except ValidationError:
                logger.warning("Skipping invalid %s entry: %r", self.key, item)
        return entries[: self.max_size]

    def _save(self) -> None:
        payload = [entry.model_dump(mode="json") for entry in self._entries]
        try:
            self._storage.set(self.key, payload)
        except PersistenceError:
            logger.error("Failed to persist %s (%d entries)", self.key, len(payload), exc_info=True)


class ConversionHistory(BoundedLog[HistoryEntry]):
    def __init__(self, *, storage: KeyValueStorage, max_size: int = 20) -> None:
        super().__init__(
            storage=storage,
            key=StorageKey.HISTORY,
            entry_type=HistoryEntry,
            max_size=max_size,
            id_prefix="conv",
        )

    def record(self, conversion: Conversion) -> str:
        return self.add(HistoryEntry.from_conversion(conversion))


class Favorites(BoundedLog[FavoriteEntry]):
    def __init__(self, *, storage: KeyValueStorage, max_size: int = 50) -> None:
        super().__init__(
            storage=storage,
            key=StorageKey.FAVORITES,
            entry_type=FavoriteEntry,
            max_size=max_size,
            id_prefix="fav",
        )

    def save(self, from_currency: str, to_currency: str, amount: Decimal) -> str:
        return self.add(FavoriteEntry(from_currency=from_currency, to_currency=to_currency, amount=amount))


class ArbitrageAuditLog(BoundedLog[AuditLogEntry]):
    """Audit trail of arbitrage opportunities, the decisions taken on them and their outcome."""

    def __init__(self, *, storage: KeyValueStorage, max_size: int = 100) -> None:
        super().__init__(
            storage=storage,
            key=StorageKey.AUDIT_LOGS,
            entry_type=AuditLogEntry,
            max_size=max_size,
            id_prefix="log",
        )

    def log_opportunity_detected(self, opportunity: dict[str, Any], arbitrage_type: str) -> str:
        return self.add(
            AuditLogEntry(
                action=AuditAction.OPPORTUNITY_DETECTED,
                type=arbitrage_type,
                data=opportunity,
                status=AuditStatus.DETECTED,
            )
        )

    def log_decision(self, opportunity_id: str, decision: str, reason: str) -> str:
        entry_id = self.add(
            AuditLogEntry(
                action=AuditAction.DECISION,
                opportunity_id=opportunity_id,
                decision=decision,
                reason=reason,
            )
        )
        status = AuditStatus.EXECUTING if decision == "execute" else AuditStatus.IGNORED
        self._update_opportunity_status(opportunity_id, status)
        return entry_id

    def log_result(self, opportunity_id: str, success: bool, result: dict[str, Any]) -> str:
        entry_id = self.add(
            AuditLogEntry(
                action=AuditAction.RESULT,
                opportunity_id=opportunity_id,
                success=success,
                data=result,
            )
        )
        self._update_opportunity_status(opportunity_id, AuditStatus.COMPLETED if success else AuditStatus.FAILED)
        return entry_id

    def get_by_type(self, arbitrage_type: str) -> list[AuditLogEntry]:
        return [entry for entry in self._opportunities() if entry.type == arbitrage_type]

    def get_by_status(self, status: AuditStatus | str) -> list[AuditLogEntry]:
        return [entry for entry in self._opportunities() if entry.status == status]

    def _opportunities(self) -> list[AuditLogEntry]:
        return [entry for entry in self.get_all() if entry.action is AuditAction.OPPORTUNITY_DETECTED]

    def _update_opportunity_status(self, opportunity_id: str, status: AuditStatus) -> None:
        opportunity = self.get(opportunity_id)
        if opportunity is None or opportunity.action is not AuditAction.OPPORTUNITY_DETECTED:
            logger.debug("Opportunity %s no longer in the audit log; status %s not applied", opportunity_id, status)
            return
        self._replace(opportunity_id, status=status)


class UserSettingsRepository:
    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    def load(self) -> UserSettings:
        try:
            raw = self._storage.get(StorageKey.SETTINGS)
        except PersistenceError:
            logger.warning("Failed to load user settings; using defaults", exc_info=True)
            return UserSettings()
        if raw is None:
            return UserSettings()
        try:
            return UserSettings.model_validate(raw)
        except ValidationError:
            logger.warning("Stored user settings are invalid; using defaults")
            return UserSettings()

    def save(self, settings: UserSettings) -> None:
        try:
            self._storage.set(StorageKey.SETTINGS, settings.model_dump(mode="json"))
            self._storage.set(StorageKey.THEME, settings.theme.value)
        except PersistenceError:
            logger.error("Failed to persist user settings", exc_info=True)

    def theme(self) -> Theme:
        try:
            raw = self._storage.get(StorageKey.THEME)
        except PersistenceError:
            logger.warning("Failed to read theme", exc_info=True)
            raw = None
        try:
            return Theme(raw) if raw is not None else self.load().theme
        except ValueError:
            return Theme.SYSTEM


__all__ = [
    "ArbitrageAuditLog",
    "BoundedLog",
    "ConversionHistory",
    "Favorites",
    "UserSettingsRepository",
]
