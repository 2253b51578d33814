"""Record edits performed while reviewing analyzed receipts."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from receiptflow.base.records import ReceiptFields

logger = logging.getLogger(__name__)

PARTICIPANT_POOL_KEY = "participant_pool"
DEFAULT_MEMBERS: tuple[str, ...] = ()


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """Key-value store kept in memory."""

    def __init__(self, data: dict[str, Any] | None = None):
        self.data: dict[str, Any] = dict(data or {})

    def get(self, key: str) -> Any | None:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value


class JsonFileStore:
    """Key-value store persisted as a single JSON object on disk."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning("Ignoring unreadable store %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any | None:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


class ParticipantPool:
    """Names offered when assigning participants to meeting expenses.

    The pool is loaded from the store once and written back on every change.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = PARTICIPANT_POOL_KEY,
        defaults: tuple[str, ...] | list[str] = DEFAULT_MEMBERS,
    ):
        self.store = store
        self.key = key
        saved = store.get(key)
        self._names: list[str] = [str(n) for n in saved] if isinstance(saved, list) else list(defaults)

    @property
    def names(self) -> list[str]:
        return list(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def add(self, name: str) -> bool:
        """Add a name to the pool. Returns False for blank or already known names."""
        name = name.strip()
        if not name or name in self._names:
            return False
        self._names.append(name)
        self.store.set(self.key, self._names)
        return True


def parse_participants(text: str | None) -> list[str]:
    if not text:
        return []
    return [name.strip() for name in text.split(",") if name.strip()]


def with_participants(fields: ReceiptFields, names: list[str]) -> ReceiptFields:
    """Return fields listing ``names`` as participants, with the head count kept in sync."""
    return fields.updated(participants=", ".join(names), people_count=max(1, len(names)))


def toggle_participant(fields: ReceiptFields, name: str) -> ReceiptFields:
    current = parse_participants(fields.participants)
    if name in current:
        current.remove(name)
    else:
        current.append(name)
    return with_participants(fields, current)


def add_participant(fields: ReceiptFields, name: str, pool: ParticipantPool | None = None) -> ReceiptFields:
    """Add a new name to the pool (if given) and to the receipt's participants."""
    name = name.strip()
    if not name:
        return fields
    if pool is not None:
        pool.add(name)
    current = parse_participants(fields.participants)
    if name in current:
        return fields
    return with_participants(fields, current + [name])
