"""
Base protocol and types for the document store client.

The mutation engine and the repository never speak HTTP themselves; they
go through a StoreClient. Two implementations exist:
- CouchStoreClient: CouchDB over HTTP (production)
- InMemoryStoreClient: same semantics, kept in a dict (tests, local dev)

Invariants:
    - Every successful write returns the new revision assigned by the store
    - Revisions are opaque and compared only for equality
    - Conflicts raise StoreConflictError, missing documents StoreNotFoundError
    - fetch_view() rows come back in ascending key order

How to change safely:
    - Protocol changes require updating both implementations
    - Keep error mapping identical across implementations
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..errors import (
    StoreConflictError,
    StoreConnectionError,
    StoreError,
    StoreNotFoundError,
)

__all__ = [
    "BatchItem",
    "DatabaseHandle",
    "StoreClient",
    "StoreConflictError",
    "StoreConnectionError",
    "StoreError",
    "StoreNotFoundError",
]


@dataclass(frozen=True)
class DatabaseHandle:
    """Opened database.

    Attributes:
        name: Database name
    """

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class BatchItem:
    """Per-document outcome of a batch save.

    Attributes:
        id: Document identifier
        rev: New revision when the document was saved
        error: Store error tag when it was not (e.g. "conflict")
        reason: Store supplied reason text
    """

    id: str | None
    rev: str | None = None
    error: str | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BatchItem:
        """Create from a CouchDB _bulk_docs result entry."""
        return cls(
            id=data.get("id"),
            rev=data.get("rev"),
            error=data.get("error"),
            reason=data.get("reason"),
        )


@runtime_checkable
class StoreClient(Protocol):
    """Protocol for document store clients.

    Example:
        >>> store = CouchStoreClient(settings)
        >>> db = store.open("posts")
        >>> saved = store.save(db, {"title": "hello"})
        >>> saved["_id"], saved["_rev"]
    """

    @abstractmethod
    def open(self, database: str) -> DatabaseHandle:
        """Open an existing database.

        Raises:
            StoreNotFoundError: If the database does not exist
            StoreConnectionError: If the store cannot be reached
        """
        ...

    @abstractmethod
    def save(self, db: DatabaseHandle, document: dict[str, Any]) -> dict[str, Any]:
        """Save a document, returning it with the assigned _id and _rev.

        A document without _id is created with a store-generated id. A
        document with _id is created, or updated when its _rev matches.

        Raises:
            StoreConflictError: If the id is taken or the revision is stale
            StoreError: For other failures
        """
        ...

    @abstractmethod
    def save_batch(self, db: DatabaseHandle, documents: list[dict[str, Any]]) -> list[BatchItem]:
        """Submit several documents in one request.

        Returns:
            One BatchItem per input document, in input order

        Raises:
            StoreError: If the request as a whole fails
        """
        ...

    @abstractmethod
    def delete(self, db: DatabaseHandle, doc_id: str, rev: str) -> str:
        """Delete a document at the given revision.

        Returns:
            The revision of the deletion

        Raises:
            StoreNotFoundError: If the document does not exist
            StoreConflictError: If rev is not the current revision
        """
        ...

    @abstractmethod
    def fetch(self, db: DatabaseHandle, doc_id: str) -> dict[str, Any]:
        """Fetch a document by id.

        Raises:
            StoreNotFoundError: If the document does not exist
        """
        ...

    @abstractmethod
    def fetch_view(
        self,
        db: DatabaseHandle,
        design: str,
        view: str,
        options: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """Fetch the rows of a view.

        Args:
            db: Database handle
            design: Design document name (without "_design/")
            view: View name
            options: key / keys / startkey / endkey / include_docs

        Returns:
            Rows with "id", "key", "value" and, with include_docs, "doc"

        Raises:
            StoreNotFoundError: If the design or view does not exist
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release connections."""
        ...
