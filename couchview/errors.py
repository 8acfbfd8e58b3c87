"""
Error types for couchview.

This module defines all exception types raised by the package:
- CouchViewError: Base exception
- UnsupportedQueryError: Query shape cannot be expressed as one view lookup
- StaleEntryError: Update target missing or revision mismatch
- DataIntegrityError: View row without its embedded document
- ValidationError / UnknownFieldError: Record rejected before encoding
- StoreError and subclasses: Failures reported by a store client

Invariants:
    - All errors inherit from CouchViewError
    - Errors include context for debugging
    - Store-level conflicts on insert/delete are NOT raised to callers of
      the mutation engine; they become structured results (see engine.py)
"""

from __future__ import annotations

from typing import Any


class CouchViewError(Exception):
    """Base exception for all couchview errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "COUCHVIEW_ERROR"
        self.details = details or {}


class UnsupportedQueryError(CouchViewError):
    """Query cannot be compiled to a single view lookup.

    Raised when:
    - Joins, preloads, havings or distinct are requested
    - More than one top-level where clause is given
    - A comparator other than ==, in, >=, <= is used
    - Conjoined predicates target different views
    - Two different values are given for key, startkey or endkey

    Attributes:
        reason: Machine-readable reason
        clause: The offending clause, when known
    """

    def __init__(
        self,
        message: str,
        reason: str = "unsupported_operation",
        clause: Any = None,
    ) -> None:
        super().__init__(
            message,
            code="UNSUPPORTED_QUERY",
            details={"reason": reason, "clause": repr(clause) if clause is not None else None},
        )
        self.reason = reason
        self.clause = clause


class StaleEntryError(CouchViewError):
    """Attempted to update an entry that is gone or has moved on.

    The caller should re-read the document and reapply its changes.
    """

    def __init__(
        self,
        message: str,
        doc_id: str,
        expected_rev: str | None = None,
        actual_rev: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="STALE_ENTRY",
            details={
                "doc_id": doc_id,
                "expected_rev": expected_rev,
                "actual_rev": actual_rev,
            },
        )
        self.doc_id = doc_id
        self.expected_rev = expected_rev
        self.actual_rev = actual_rev


class DataIntegrityError(CouchViewError):
    """A view row was expected to carry a document but did not."""

    def __init__(self, message: str, row: Any = None) -> None:
        super().__init__(message, code="DATA_INTEGRITY", details={"row": row})
        self.row = row


class ValidationError(CouchViewError):
    """Record validation failed.

    Raised when:
    - Required field is missing
    - Embedded value has the wrong shape
    """

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class UnknownFieldError(CouchViewError):
    """Unknown field in record.

    Includes suggestions for similar field names.

    Attributes:
        field_name: The unknown field
        entity_name: The entity being written
        suggestions: Similar field names
    """

    def __init__(
        self,
        field_name: str,
        entity_name: str,
        suggestions: list[str] | None = None,
    ) -> None:
        suggestions = suggestions or []
        msg = f"Unknown field '{field_name}' in entity '{entity_name}'"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"

        super().__init__(
            msg,
            code="UNKNOWN_FIELD",
            details={
                "field_name": field_name,
                "entity_name": entity_name,
                "suggestions": suggestions,
            },
        )
        self.field_name = field_name
        self.entity_name = entity_name
        self.suggestions = suggestions


class StoreError(CouchViewError):
    """Store reported a failure.

    Attributes:
        status_code: HTTP status (or equivalent) when available
        error: Store error tag (e.g. "conflict", "not_found")
        reason: Store supplied reason text
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str | None = None,
        reason: str | None = None,
        code: str = "STORE_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"status_code": status_code, "error": error, "reason": reason},
        )
        self.status_code = status_code
        self.error = error
        self.reason = reason


class StoreConnectionError(StoreError):
    """Failed to reach the store.

    Raised when:
    - Server is unreachable
    - Connection or read times out
    """

    def __init__(self, message: str, address: str | None = None) -> None:
        super().__init__(message, error="connection", code="STORE_CONNECTION_ERROR")
        self.details["address"] = address
        self.address = address


class StoreConflictError(StoreError):
    """Document update conflict (identifier taken or revision mismatch)."""

    def __init__(self, message: str, reason: str | None = None) -> None:
        super().__init__(
            message,
            status_code=409,
            error="conflict",
            reason=reason or "Document update conflict.",
            code="STORE_CONFLICT",
        )


class StoreNotFoundError(StoreError):
    """Database or document does not exist."""

    def __init__(self, message: str, reason: str | None = None) -> None:
        super().__init__(
            message,
            status_code=404,
            error="not_found",
            reason=reason or "missing",
            code="STORE_NOT_FOUND",
        )
