"""
Mutation engine for couchview.

Runs the write protocols against a store client:
- insert: save one document; an identifier conflict becomes a
  uniqueness violation result instead of an exception
- insert_all: save many documents in one batch request
- delete: delete at a revision; deleting a missing document succeeds
- update: optimistic read-modify-write under a revision check

Only the store's domain signals (conflict, not found) are translated
here. Transport and server failures propagate unchanged: this layer has
no basis for choosing a recovery.

Invariants:
    - Records are validated and encoded before any request is made
    - _rev is never synthesized; it always comes from the store
    - Nothing is retried; a stale update is reported to the caller
    - No atomicity across documents, including inside a batch
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .codec import DocumentCodec, encode, encode_value
from .errors import StaleEntryError, StoreConflictError, StoreNotFoundError, ValidationError
from .schema.types import ID_FIELD, REV_FIELD, EntityDef
from .schema.validate import record_fields, validate_or_raise
from .store.base import BatchItem, DatabaseHandle, StoreClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsertResult:
    """Outcome of an insert.

    Attributes:
        ok: Whether the document was saved
        doc_id: Identifier of the saved document
        rev: Revision assigned by the store
        returned: Requested fields decoded from the saved document
        constraint: Violated unique index name when ok is False
    """

    ok: bool
    doc_id: str | None = None
    rev: str | None = None
    returned: dict[str, Any] = field(default_factory=dict)
    constraint: str | None = None

    @property
    def errors(self) -> list[tuple[str, str]]:
        """Constraint violations as (kind, name) pairs."""
        return [("unique", self.constraint)] if self.constraint else []


@dataclass(frozen=True)
class BatchInsertResult:
    """Outcome of a batch insert.

    Attributes:
        count: Number of documents the store accepted
        rows: Requested fields per input record, in input order (None when
            no fields were requested; None entries for rejected records)
        failures: (input index, store outcome) for each rejected record
    """

    count: int
    rows: list[dict[str, Any] | None] | None = None
    failures: list[tuple[int, BatchItem]] = field(default_factory=list)


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a delete.

    Attributes:
        ok: Whether the document is gone
        rev: Revision of the deletion (None if it was already gone)
        already_deleted: The store did not know the document
        reason: Store supplied reason when ok is False
    """

    ok: bool
    rev: str | None = None
    already_deleted: bool = False
    reason: str | None = None


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of a successful update.

    Attributes:
        doc_id: Identifier of the updated document
        rev: New revision
        returned: Requested fields decoded from the saved document
    """

    doc_id: str
    rev: str
    returned: dict[str, Any] = field(default_factory=dict)


def _prepare(entity: EntityDef, record: Any) -> dict[str, Any]:
    """Encode a new record, leaving identifier and revision to the store when unset.

    Fields absent from the record take their declared default.
    """
    document = encode(record)
    for reserved in (ID_FIELD, REV_FIELD):
        if reserved in document and document[reserved] is None:
            del document[reserved]
    for field_def in entity.fields:
        if field_def.default is not None and field_def.name not in document:
            document[field_def.name] = encode_value(copy.deepcopy(field_def.default))
    return document


class MutationEngine:
    """Executes inserts, updates and deletes against a store client.

    Example:
        >>> engine = MutationEngine(store)
        >>> result = engine.insert(db, Post, {"_id": "FOO", "title": "t"}, returning=["_id", "_rev"])
        >>> result.ok, result.returned["_id"]
        (True, 'FOO')
    """

    def __init__(self, store: StoreClient) -> None:
        self.store = store

    def insert(
        self,
        db: DatabaseHandle,
        entity: EntityDef,
        record: Any,
        returning: Iterable[str] = (),
    ) -> InsertResult:
        """Insert one record.

        Args:
            db: Database handle
            entity: Entity of the record
            record: Field map or dataclass instance
            returning: Fields to decode from the saved document

        Returns:
            InsertResult; ok is False on an identifier conflict

        Raises:
            UnknownFieldError / ValidationError: If the record is invalid
            StoreError: For any other store failure
        """
        validate_or_raise(entity, record)
        document = _prepare(entity, record)

        try:
            saved = self.store.save(db, document)
        except StoreConflictError:
            logger.warning(
                "Insert rejected: identifier already taken",
                extra={"entity": entity.name, "doc_id": document.get(ID_FIELD), "constraint": entity.id_index},
            )
            return InsertResult(ok=False, doc_id=document.get(ID_FIELD), constraint=entity.id_index)

        codec = DocumentCodec(entity)
        return InsertResult(
            ok=True,
            doc_id=saved[ID_FIELD],
            rev=saved[REV_FIELD],
            returned=codec.decode(saved, list(returning)),
        )

    def insert_all(
        self,
        db: DatabaseHandle,
        entity: EntityDef,
        records: Iterable[Any],
        returning: Iterable[str] | None = None,
    ) -> BatchInsertResult:
        """Insert records in one batch request.

        Each record is validated and encoded on its own; the batch is
        submitted together and every document succeeds or fails alone.

        Args:
            db: Database handle
            entity: Entity of the records
            records: Field maps or dataclass instances
            returning: Fields to decode per record; None for a count only

        Returns:
            BatchInsertResult in input order

        Raises:
            UnknownFieldError / ValidationError: If any record is invalid
            StoreError: If the batch request fails as a whole
        """
        records = list(records)
        for record in records:
            validate_or_raise(entity, record)
        documents = [_prepare(entity, record) for record in records]

        if not documents:
            return BatchInsertResult(count=0, rows=[] if returning is not None else None)

        items = self.store.save_batch(db, documents)

        failures = [(index, item) for index, item in enumerate(items) if not item.ok]
        if failures:
            logger.warning(
                "Batch insert partially rejected",
                extra={
                    "entity": entity.name,
                    "rejected": len(failures),
                    "submitted": len(documents),
                },
            )

        rows: list[dict[str, Any] | None] | None = None
        if returning is not None:
            fields = list(returning)
            codec = DocumentCodec(entity)
            rows = []
            for document, item in zip(documents, items):
                if not item.ok:
                    rows.append(None)
                    continue
                saved = dict(document)
                saved[ID_FIELD] = item.id
                saved[REV_FIELD] = item.rev
                rows.append(codec.decode(saved, fields))

        return BatchInsertResult(count=len(items) - len(failures), rows=rows, failures=failures)

    def delete(self, db: DatabaseHandle, entity: EntityDef, doc_id: str, rev: str) -> DeleteResult:
        """Delete a document at the caller's revision.

        Returns:
            DeleteResult: ok with the new revision; ok with already_deleted
            when the store does not know the id; not ok with the store's
            reason when the revision was rejected

        Raises:
            StoreError: For transport or server failures
        """
        try:
            new_rev = self.store.delete(db, doc_id, rev)
        except StoreNotFoundError:
            logger.debug(
                "Delete of missing document treated as done",
                extra={"entity": entity.name, "doc_id": doc_id},
            )
            return DeleteResult(ok=True, already_deleted=True)
        except StoreConflictError as e:
            logger.warning(
                "Delete rejected by store",
                extra={"entity": entity.name, "doc_id": doc_id, "rev": rev, "reason": e.reason},
            )
            return DeleteResult(ok=False, reason=e.reason or e.message)

        return DeleteResult(ok=True, rev=new_rev)

    def update(
        self,
        db: DatabaseHandle,
        entity: EntityDef,
        doc_id: str,
        rev: str,
        changes: Any,
        returning: Iterable[str] = (),
    ) -> UpdateResult:
        """Apply field changes to the document at the caller's revision.

        The current document is read first; if it is gone or its revision
        differs from rev, another writer got there first and the update
        is refused. Otherwise the changes are merged over it and saved.

        Args:
            db: Database handle
            entity: Entity of the document
            doc_id: Document identifier
            rev: Revision the caller last read
            changes: Field map (or dataclass) of new values
            returning: Fields to decode from the saved document

        Returns:
            UpdateResult with the new revision

        Raises:
            StaleEntryError: If the document is missing or rev is outdated
            UnknownFieldError / ValidationError: If changes are invalid
            StoreError: For transport or server failures
        """
        changes = record_fields(changes)
        reserved = [name for name in (ID_FIELD, REV_FIELD) if name in changes]
        if reserved:
            raise ValidationError(
                f"Cannot change reserved field(s) {reserved} of {entity.name}",
                field_name=reserved[0],
            )
        validate_or_raise(entity, changes, partial=True)

        try:
            current = self.store.fetch(db, doc_id)
        except StoreNotFoundError:
            raise StaleEntryError(
                f"Attempted to update a stale {entity.name}: '{doc_id}' does not exist",
                doc_id=doc_id,
                expected_rev=rev,
            ) from None

        if current.get(REV_FIELD) != rev:
            logger.warning(
                "Update refused: revision moved on",
                extra={"doc_id": doc_id, "expected_rev": rev, "actual_rev": current.get(REV_FIELD)},
            )
            raise StaleEntryError(
                f"Attempted to update a stale {entity.name}: '{doc_id}' is at a newer revision",
                doc_id=doc_id,
                expected_rev=rev,
                actual_rev=current.get(REV_FIELD),
            )

        merged = dict(current)
        for name, value in changes.items():
            merged[str(name)] = encode_value(value)

        try:
            saved = self.store.save(db, merged)
        except StoreConflictError:
            raise StaleEntryError(
                f"Attempted to update a stale {entity.name}: '{doc_id}' changed during update",
                doc_id=doc_id,
                expected_rev=rev,
            ) from None

        fields = list(returning)
        if REV_FIELD not in fields:
            fields.append(REV_FIELD)
        codec = DocumentCodec(entity)
        return UpdateResult(
            doc_id=saved[ID_FIELD],
            rev=saved[REV_FIELD],
            returned=codec.decode(saved, fields),
        )
