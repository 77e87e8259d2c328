"""Keyed record store interface and an in-process implementation.

The exam core only talks to persistence through the four operations of
:class:`RecordStore`. Records are plain dictionaries; every record handed out
by a store carries its ``id``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import copy
import logging
from threading import Lock
from typing import Any, Callable
from uuid import uuid4

Record = dict[str, Any]
ChangeCallback = Callable[[Record | None], None]
Unsubscribe = Callable[[], None]

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """Generic keyed record store with real-time subscriptions."""

    @abstractmethod
    def create(self, collection_path: str, record: Record) -> str:
        """Insert ``record`` and return its generated id."""

    @abstractmethod
    def update(self, collection_path: str, record_id: str, partial_record: Record) -> None:
        """Merge ``partial_record`` into an existing record (top-level keys only)."""

    @abstractmethod
    def subscribe(self, collection_path: str, record_id: str, on_change: ChangeCallback) -> Unsubscribe:
        """Call ``on_change`` with the current record and on every later change.

        ``on_change`` receives ``None`` when the record does not exist.
        """

    @abstractmethod
    def query(self, collection_path: str, filters: dict[str, Any] | None = None) -> list[Record]:
        """Return records whose fields equal every value in ``filters``."""


class InMemoryRecordStore(RecordStore):
    """Thread-safe dictionary-backed store used by the server and the tests."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._collections: dict[str, dict[str, Record]] = {}
        self._subscribers: dict[tuple[str, str], list[ChangeCallback]] = {}

    def create(self, collection_path: str, record: Record) -> str:
        with self._lock:
            record_id = str(record.get("id") or uuid4().hex)
            collection = self._collections.setdefault(collection_path, {})
            if record_id in collection:
                raise KeyError(f"Record {record_id!r} already exists in {collection_path!r}")
            stored = copy.deepcopy(record)
            stored["id"] = record_id
            collection[record_id] = stored
            snapshot = copy.deepcopy(stored)
            callbacks = list(self._subscribers.get((collection_path, record_id), ()))
        self._notify(callbacks, snapshot)
        return record_id

    def update(self, collection_path: str, record_id: str, partial_record: Record) -> None:
        with self._lock:
            stored = self._collections.get(collection_path, {}).get(record_id)
            if stored is None:
                raise KeyError(f"Record {record_id!r} not found in {collection_path!r}")
            for key, value in partial_record.items():
                if key != "id":
                    stored[key] = copy.deepcopy(value)
            snapshot = copy.deepcopy(stored)
            callbacks = list(self._subscribers.get((collection_path, record_id), ()))
        self._notify(callbacks, snapshot)

    def subscribe(self, collection_path: str, record_id: str, on_change: ChangeCallback) -> Unsubscribe:
        key = (collection_path, record_id)
        with self._lock:
            self._subscribers.setdefault(key, []).append(on_change)
            stored = self._collections.get(collection_path, {}).get(record_id)
            snapshot = copy.deepcopy(stored) if stored is not None else None

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(key, [])
                if on_change in callbacks:
                    callbacks.remove(on_change)
                if not callbacks:
                    self._subscribers.pop(key, None)

        self._notify([on_change], snapshot)
        return unsubscribe

    def query(self, collection_path: str, filters: dict[str, Any] | None = None) -> list[Record]:
        filters = filters or {}
        with self._lock:
            records = self._collections.get(collection_path, {}).values()
            return [
                copy.deepcopy(record)
                for record in records
                if all(record.get(name) == value for name, value in filters.items())
            ]

    @staticmethod
    def _notify(callbacks: list[ChangeCallback], snapshot: Record | None) -> None:
        for callback in callbacks:
            try:
                callback(copy.deepcopy(snapshot))
            except Exception:
                logger.exception("Record subscriber raised while handling a change")
