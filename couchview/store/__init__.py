"""
Document store clients for couchview.

This module provides the store boundary used by the mutation engine and
the repository:
- StoreClient protocol and shared types
- CouchDB over HTTP (production)
- In-memory (for testing)

Invariants:
    - Clients are created and closed by the application, never globally
    - Store-level failures are raised as StoreError subclasses
"""

from .base import (
    BatchItem,
    DatabaseHandle,
    StoreClient,
    StoreConflictError,
    StoreConnectionError,
    StoreError,
    StoreNotFoundError,
)
from .http import CouchStoreClient, encode_view_params
from .memory import InMemoryStoreClient, collation_key, emit_field, emit_id

__all__ = [
    # Protocol and types
    "StoreClient",
    "DatabaseHandle",
    "BatchItem",
    "StoreError",
    "StoreConnectionError",
    "StoreConflictError",
    "StoreNotFoundError",
    # Implementations
    "CouchStoreClient",
    "InMemoryStoreClient",
    # Helpers
    "encode_view_params",
    "collation_key",
    "emit_id",
    "emit_field",
]
