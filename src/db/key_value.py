from __future__ import annotations

import json
import os
import re
import tempfile
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models import KeyValueOrm
from domain.errors import PersistenceError

_VALID_KEY = re.compile(r"^[A-Za-z0-9_.\-]+$")


class StorageKey(StrEnum):
    THEME = "theme"
    HISTORY = "history"
    FAVORITES = "favorites"
    AUDIT_LOGS = "audit_logs"
    LAST_RATES = "last_rates"
    SETTINGS = "settings"
    CACHE = "cache"


class KeyValueStorage(Protocol):
    """Best-effort local key-value persistence; values are JSON-serializable."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self, prefix: str = "") -> list[str]: ...


def _encode(key: str, value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Value for {key!r} is not JSON serializable") from exc


def _decode(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise PersistenceError(f"Stored value for {key!r} is not valid JSON") from exc


class MemoryStorage(KeyValueStorage):
    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._items.get(key)
        return None if raw is None else _decode(key, raw)

    def set(self, key: str, value: Any) -> None:
        self._items[key] = _encode(key, value)

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._items if key.startswith(prefix))


class JsonFileStorage(KeyValueStorage):
    """One `<key>.json` file per key under root_dir; writes replace the file atomically."""

    def __init__(self, *, root_dir: Path) -> None:
        self.root_dir = root_dir

    def get(self, key: str) -> Any | None:
        path = self._file_path(key)
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Failed to read {path}") from exc
        return _decode(key, raw)

    def set(self, key: str, value: Any) -> None:
        path = self._file_path(key)
        encoded = _encode(key, value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(encoded)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Failed to write {path}") from exc

    def delete(self, key: str) -> None:
        try:
            self._file_path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to delete {key!r}") from exc

    def keys(self, prefix: str = "") -> list[str]:
        if not self.root_dir.exists():
            return []
        return sorted(path.stem for path in self.root_dir.glob("*.json") if path.stem.startswith(prefix))

    def _file_path(self, key: str) -> Path:
        if not _VALID_KEY.match(key):
            raise PersistenceError(f"Invalid storage key: {key!r}")
        return self.root_dir / f"{key}.json"


class SqliteStorage(KeyValueStorage):
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, key: str) -> Any | None:
        try:
            row = self._session.get(KeyValueOrm, key)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read {key!r}") from exc
        return None if row is None else _decode(key, row.value)

    def set(self, key: str, value: Any) -> None:
        encoded = _encode(key, value)
        try:
            self._session.merge(KeyValueOrm(key=key, value=encoded, updated_at=datetime.now(timezone.utc)))
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise PersistenceError(f"Failed to write {key!r}") from exc

    def delete(self, key: str) -> None:
        try:
            row = self._session.get(KeyValueOrm, key)
            if row is not None:
                self._session.delete(row)
                self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise PersistenceError(f"Failed to delete {key!r}") from exc

    def keys(self, prefix: str = "") -> list[str]:
        stmt = (
            select(KeyValueOrm.key)
            .where(KeyValueOrm.key.startswith(prefix, autoescape=True))
            .order_by(KeyValueOrm.key)
        )
        try:
            return list(self._session.scalars(stmt))
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to list storage keys") from exc


__all__ = [
    "JsonFileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "SqliteStorage",
    "StorageKey",
]
