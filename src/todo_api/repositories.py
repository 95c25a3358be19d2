from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from functools import lru_cache
from threading import Lock, RLock
from typing import Any, List, Optional

import pydantic

from .errors import NotFound, ValidationError
from .kvstore import KeyValueStore, build_store
from .models import TodoEntity
from .protocol import ProtocolError, validate_key
from .schemas import TodoCreate, TodoOut, TodoUpdate
from .settings import get_settings

logger = logging.getLogger(__name__)

INDEX_KEY = "todo_ids"
RECORD_PREFIX = "todo:"


def record_key(todo_id: str) -> str:
    return f"{RECORD_PREFIX}{todo_id}"


def _encode(value: Any) -> str:
    # compact separators keep every value on one protocol line
    return json.dumps(value, separators=(",", ":"))


class IdGenerator:
    """
    Issues millisecond-timestamp ids that strictly increase within the process,
    even when two calls land in the same millisecond.
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._lock = Lock()
        self._last = 0

    def __call__(self) -> str:
        with self._lock:
            candidate = int(self._clock() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return str(candidate)


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for todo storage backends."""

    @abstractmethod
    def create(self, data: TodoCreate) -> TodoEntity:
        """Create and return a new TodoEntity."""

    @abstractmethod
    def get(self, todo_id: str) -> TodoEntity:
        """Return a TodoEntity by id. Raise NotFound if absent."""

    @abstractmethod
    def update(self, todo_id: str, data: TodoUpdate) -> TodoEntity:
        """Apply the supplied fields to an existing TodoEntity. Raise NotFound if absent."""

    @abstractmethod
    def delete(self, todo_id: str) -> None:
        """Delete a TodoEntity by id. Raise NotFound if absent."""

    @abstractmethod
    def list(self) -> List[TodoEntity]:
        """Return all TodoEntities in creation order."""


class TodoIndexStore(Repository):
    """
    Todo repository over a generic key-value store.

    Layout:
    - INDEX_KEY holds a JSON array of ids in creation order
    - RECORD_PREFIX + id holds each record as a JSON object

    The store has no multi-key transactions, so a record and the index are
    written one after the other. Index read-modify-write runs under a lock so
    concurrent creates and deletes in this process cannot drop each other's
    changes. Reads tolerate a missing or undecodable index (treated as empty)
    and ids whose record is missing, undecodable or not shaped like a todo
    (skipped by list, NotFound for get, update and delete).
    """

    def __init__(
        self,
        store: KeyValueStore,
        id_generator: Optional[IdGenerator] = None,
        durable: bool = True,
    ) -> None:
        self._store = store
        self._new_id = id_generator or IdGenerator()
        self._durable = durable
        self._index_lock = RLock()

    @property
    def backend_name(self) -> str:
        return self._store.backend_name

    # Index

    def _read_index(self) -> List[str]:
        raw = self._store.get(INDEX_KEY)
        if raw is None:
            return []
        try:
            ids = json.loads(raw)
        except ValueError:
            logger.warning("Index under %r is not valid JSON; treating it as empty", INDEX_KEY)
            return []
        if not isinstance(ids, list):
            logger.warning("Index under %r is not a JSON array; treating it as empty", INDEX_KEY)
            return []
        return [str(i) for i in ids]

    def _write_index(self, ids: List[str]) -> None:
        self._store.set(INDEX_KEY, _encode(ids), durable=self._durable)

    def ensure_index(self) -> bool:
        """
        Initialize the index to an empty array when it is absent or not a valid
        JSON array. Returns True if the index was (re)written. Safe to repeat.
        """
        with self._index_lock:
            raw = self._store.get(INDEX_KEY)
            if raw is not None:
                try:
                    if isinstance(json.loads(raw), list):
                        return False
                except ValueError:
                    pass
            logger.info("Initializing todo index under %r", INDEX_KEY)
            self._write_index([])
            return True

    # Records

    def _checked_key(self, todo_id: str) -> str:
        # ids that cannot be sent as a key were never issued
        try:
            return validate_key(record_key(todo_id))
        except ProtocolError:
            raise NotFound(todo_id) from None

    def _read_record(self, key: str) -> Optional[TodoEntity]:
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            record = json.loads(raw)
        except ValueError:
            logger.warning("Record under %r is not valid JSON; skipping", key)
            return None
        try:
            todo = TodoOut.model_validate(record)
        except pydantic.ValidationError:
            logger.warning("Record under %r is not a valid todo; skipping", key)
            return None
        return todo.model_dump()  # type: ignore[return-value]

    def create(self, data: TodoCreate) -> TodoEntity:
        if not data.title or not data.title.strip():
            raise ValidationError("title is required")
        entity: TodoEntity = {
            "id": self._new_id(),
            "title": data.title,
            "completed": data.completed,
        }
        self._store.set(record_key(entity["id"]), _encode(entity), durable=self._durable)
        with self._index_lock:
            ids = self._read_index()
            ids.append(entity["id"])
            self._write_index(ids)
        logger.debug("Created todo %s", entity["id"])
        return entity

    def list(self) -> List[TodoEntity]:
        items: List[TodoEntity] = []
        for todo_id in self._read_index():
            try:
                key = self._checked_key(todo_id)
            except NotFound:
                continue
            record = self._read_record(key)
            if record is not None:
                items.append(record)
        return items

    def get(self, todo_id: str) -> TodoEntity:
        record = self._read_record(self._checked_key(todo_id))
        if record is None:
            raise NotFound(todo_id)
        return record

    def update(self, todo_id: str, data: TodoUpdate) -> TodoEntity:
        key = self._checked_key(todo_id)
        existing = self._read_record(key)
        if existing is None:
            raise NotFound(todo_id)

        # Update only provided fields
        updated = dict(existing)
        if "title" in data.model_fields_set and data.title is not None:
            updated["title"] = data.title
        if "completed" in data.model_fields_set and data.completed is not None:
            updated["completed"] = data.completed

        self._store.set(key, _encode(updated), durable=self._durable)
        return updated  # type: ignore[return-value]

    def delete(self, todo_id: str) -> None:
        key = self._checked_key(todo_id)
        if self._read_record(key) is None:
            raise NotFound(todo_id)
        self._store.delete(key, durable=self._durable)
        with self._index_lock:
            ids = self._read_index()
            if todo_id in ids:
                self._write_index([i for i in ids if i != todo_id])
        logger.debug("Deleted todo %s", todo_id)

    def close(self) -> None:
        self._store.close()


@lru_cache(maxsize=1)
def _shared_repository() -> TodoIndexStore:
    settings = get_settings()
    store = build_store(settings)
    logger.info("Using %s key-value store backend", store.backend_name)
    return TodoIndexStore(store, durable=settings.store_durable)


# PUBLIC_INTERFACE
def get_repository() -> TodoIndexStore:
    """
    Return the process-wide repository built from settings.
    The backing store connection is shared by every request.
    """
    return _shared_repository()


def reset_repository() -> None:
    """Close the shared store connection and forget the cached repository."""
    if _shared_repository.cache_info().currsize:
        _shared_repository().close()
    _shared_repository.cache_clear()
