"""
In-memory store client for testing.

This module provides a store with CouchDB's document semantics for:
- Unit tests
- Integration tests of the repository and mutation engine
- Local development without a CouchDB server

Views cannot run JavaScript here; they are defined with Python map
functions that yield (key, value) pairs for a document.

Invariants:
    - All data is lost on process exit
    - Same revision, conflict and not-found behavior as CouchDB
    - View rows are ordered by key using CouchDB collation
    - Thread-safe for concurrent access

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the StoreClient protocol
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..errors import StoreConflictError, StoreConnectionError, StoreNotFoundError
from .base import BatchItem, DatabaseHandle

logger = logging.getLogger(__name__)

MapFunction = Callable[[dict[str, Any]], Iterable[tuple[Any, Any]]]

DESIGN_PREFIX = "_design/"


def emit_id(doc: dict[str, Any]) -> Iterable[tuple[Any, Any]]:
    """Map function of the default "all" view: emit(doc._id, doc)."""
    yield doc["_id"], doc


def emit_field(name: str) -> MapFunction:
    """Map function keyed on one document field (documents lacking it are skipped)."""

    def _map(doc: dict[str, Any]) -> Iterable[tuple[Any, Any]]:
        if name in doc:
            yield doc[name], None

    return _map


@dataclass
class InMemoryDatabase:
    """In-memory database storage."""

    documents: dict[str, dict[str, Any]] = field(default_factory=dict)
    tombstones: dict[str, str] = field(default_factory=dict)
    views: dict[tuple[str, str], MapFunction] = field(default_factory=dict)


class InMemoryStoreClient:
    """In-memory implementation of StoreClient for testing.

    Example:
        >>> store = InMemoryStoreClient()
        >>> db = store.create_database("posts")
        >>> store.define_view("posts", "Post", "all", emit_id)
        >>> store.save(db, {"_id": "id1", "title": "t1"})["_rev"]
        '1-...'
    """

    def __init__(self) -> None:
        self._databases: dict[str, InMemoryDatabase] = {}
        self._lock = threading.Lock()
        self._pending_failure: Exception | None = None
        self._closed = False

    def close(self) -> None:
        """Close and clear all data."""
        with self._lock:
            self._databases.clear()
            self._closed = True
        logger.debug("InMemoryStoreClient closed")

    # Databases

    def create_database(self, database: str) -> DatabaseHandle:
        """Create a database; an existing one is reused."""
        with self._lock:
            self._databases.setdefault(database, InMemoryDatabase())
        return DatabaseHandle(database)

    def delete_database(self, database: str) -> None:
        with self._lock:
            self._databases.pop(database, None)

    def open(self, database: str) -> DatabaseHandle:
        with self._lock:
            self._check_available()
            if database not in self._databases:
                raise StoreNotFoundError(f"Not found: database '{database}'", reason="Database does not exist.")
        return DatabaseHandle(database)

    def define_view(self, database: str, design: str, view: str, map_fn: MapFunction) -> None:
        """Define a view with a Python map function."""
        with self._lock:
            self._get_db(database).views[(design, view)] = map_fn

    # Documents

    def save(self, db: DatabaseHandle, document: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            self._check_available()
            saved = self._save(self._get_db(db.name), document)
        logger.debug("Document saved", extra={"db": db.name, "doc_id": saved["_id"], "rev": saved["_rev"]})
        return saved

    def save_batch(self, db: DatabaseHandle, documents: list[dict[str, Any]]) -> list[BatchItem]:
        items = []
        with self._lock:
            self._check_available()
            database = self._get_db(db.name)
            for document in documents:
                try:
                    saved = self._save(database, document)
                except StoreConflictError as e:
                    items.append(
                        BatchItem(id=document.get("_id"), error="conflict", reason=e.reason)
                    )
                else:
                    items.append(BatchItem(id=saved["_id"], rev=saved["_rev"]))
        return items

    def delete(self, db: DatabaseHandle, doc_id: str, rev: str) -> str:
        with self._lock:
            self._check_available()
            database = self._get_db(db.name)
            current = database.documents.get(doc_id)
            if current is None:
                raise StoreNotFoundError(f"Not found: document '{doc_id}'", reason="deleted" if doc_id in database.tombstones else "missing")
            if current["_rev"] != rev:
                raise StoreConflictError(f"Conflict on document '{doc_id}'")

            new_rev = _next_rev(rev)
            del database.documents[doc_id]
            database.tombstones[doc_id] = new_rev
        return new_rev

    def fetch(self, db: DatabaseHandle, doc_id: str) -> dict[str, Any]:
        with self._lock:
            self._check_available()
            current = self._get_db(db.name).documents.get(doc_id)
            if current is None:
                raise StoreNotFoundError(f"Not found: document '{doc_id}'")
            return copy.deepcopy(current)

    # Views

    def fetch_view(
        self,
        db: DatabaseHandle,
        design: str,
        view: str,
        options: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        with self._lock:
            self._check_available()
            database = self._get_db(db.name)
            map_fn = database.views.get((design, view))
            if map_fn is None:
                raise StoreNotFoundError(f"Not found: view '{design}/{view}'", reason="missing_named_view")

            rows = []
            for doc_id, doc in database.documents.items():
                if doc_id.startswith(DESIGN_PREFIX):
                    continue
                for key, value in map_fn(copy.deepcopy(doc)):
                    rows.append({"id": doc_id, "key": key, "value": value, "_doc": doc})

        rows.sort(key=lambda row: (collation_key(row["key"]), row["id"]))
        rows = _select_rows(rows, options)

        result = []
        for row in rows:
            doc = row.pop("_doc")
            if options.get("include_docs"):
                row["doc"] = copy.deepcopy(doc)
            result.append(row)
        return result

    # Testing helpers

    def inject_failure(self, exception: Exception | None = None) -> None:
        """Make the next operation raise (a StoreConnectionError by default)."""
        self._pending_failure = exception or StoreConnectionError("Injected failure", address="memory")

    def document_count(self, database: str) -> int:
        """Number of live, non-design documents in a database."""
        with self._lock:
            return sum(
                1 for doc_id in self._get_db(database).documents if not doc_id.startswith(DESIGN_PREFIX)
            )

    # Internals

    def _check_available(self) -> None:
        if self._pending_failure is not None:
            failure, self._pending_failure = self._pending_failure, None
            raise failure

    def _get_db(self, name: str) -> InMemoryDatabase:
        database = self._databases.get(name)
        if database is None:
            raise StoreNotFoundError(f"Not found: database '{name}'", reason="Database does not exist.")
        return database

    def _save(self, database: InMemoryDatabase, document: dict[str, Any]) -> dict[str, Any]:
        doc_id = document.get("_id") or uuid.uuid4().hex
        current = database.documents.get(doc_id)
        given_rev = document.get("_rev")

        if current is not None:
            if given_rev != current["_rev"]:
                raise StoreConflictError(f"Conflict on document '{doc_id}'")
            new_rev = _next_rev(current["_rev"])
        elif given_rev is not None:
            raise StoreConflictError(f"Conflict on document '{doc_id}'")
        else:
            new_rev = _next_rev(database.tombstones.pop(doc_id, None))

        saved = copy.deepcopy(document)
        saved["_id"] = doc_id
        saved["_rev"] = new_rev
        database.documents[doc_id] = saved
        return copy.deepcopy(saved)


def _next_rev(rev: str | None) -> str:
    generation = int(rev.split("-", 1)[0]) if rev else 0
    return f"{generation + 1}-{uuid.uuid4().hex}"


def _select_rows(rows: list[dict[str, Any]], options: Mapping[str, Any]) -> list[dict[str, Any]]:
    if "key" in options:
        return [row for row in rows if row["key"] == options["key"]]

    if "keys" in options:
        # CouchDB answers in the order of the requested keys
        return [row for key in options["keys"] for row in rows if row["key"] == key]

    if "startkey" in options:
        start = collation_key(options["startkey"])
        rows = [row for row in rows if collation_key(row["key"]) >= start]
    if "endkey" in options:
        end = collation_key(options["endkey"])
        rows = [row for row in rows if collation_key(row["key"]) <= end]
    return rows


def collation_key(value: Any) -> tuple:
    """Sort key following CouchDB view collation.

    null < false < true < numbers < strings < arrays < objects
    """
    if value is None:
        return (0,)
    if value is False:
        return (1,)
    if value is True:
        return (2,)
    if isinstance(value, (int, float)):
        return (3, value)
    if isinstance(value, str):
        return (4, value)
    if isinstance(value, (list, tuple)):
        return (5, tuple(collation_key(item) for item in value))
    if isinstance(value, Mapping):
        return (6, tuple((k, collation_key(v)) for k, v in value.items()))
    return (7, repr(value))
