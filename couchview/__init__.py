"""
couchview - Typed queries and optimistic writes over CouchDB views.

This package lets an application query and mutate a CouchDB database
that only answers pre-defined views:
- Entity and view declarations (EntityDef, design, view, field)
- Query compiler: predicate trees to a single view lookup
- Document codec for nested records
- Mutation engine with revision checks on update and delete
- Repository facade tying it together

Example:
    >>> from couchview import CouchStoreClient, EntityDef, Query, Repository, ViewRegistry
    >>> from couchview import design, field, view, view_key
    >>>
    >>> Post = EntityDef(
    ...     name="Post",
    ...     source="posts",
    ...     fields=(field("title", "string"),),
    ...     designs=(design("Post", view("by_title", ["string"])),),
    ... )
    >>> registry = ViewRegistry()
    >>> registry.register(Post)
    >>>
    >>> with CouchStoreClient() as store:
    ...     repo = Repository(store, registry)
    ...     repo.insert(Post, {"_id": "id1", "title": "hello"})
    ...     repo.all(Query(Post).where(view_key("by_title") == "hello"))

Invariants:
    - A query is answered by exactly one view fetch, or refused
    - _rev values always come from the store
    - Updates never overwrite a newer revision
"""

__version__ = "0.1.0"

from .codec import DocumentCodec, decode, encode
from .config import LoggingSettings, Settings, StoreSettings
from .engine import (
    BatchInsertResult,
    DeleteResult,
    InsertResult,
    MutationEngine,
    UpdateResult,
)
from .errors import (
    CouchViewError,
    DataIntegrityError,
    StaleEntryError,
    StoreConflictError,
    StoreConnectionError,
    StoreError,
    StoreNotFoundError,
    UnknownFieldError,
    UnsupportedQueryError,
    ValidationError,
)
from .logging_setup import setup_logging
from .projector import ResultProjector, project
from .query import (
    And,
    Eq,
    Gte,
    In,
    Lte,
    Query,
    ViewQuery,
    compile_query,
    parse_filter,
    view_key,
)
from .repo import Repository, design_document
from .schema import (
    EmbeddedDef,
    EntityDef,
    FieldDef,
    FieldKind,
    ViewRegistry,
    design,
    embeds_many,
    embeds_one,
    field,
    get_registry,
    load_schema_file,
    view,
)
from .store import CouchStoreClient, InMemoryStoreClient, StoreClient

__all__ = [
    # Version
    "__version__",
    # Schema
    "EntityDef",
    "EmbeddedDef",
    "FieldDef",
    "FieldKind",
    "design",
    "view",
    "field",
    "embeds_one",
    "embeds_many",
    "ViewRegistry",
    "get_registry",
    "load_schema_file",
    # Query
    "Query",
    "ViewQuery",
    "Eq",
    "In",
    "Gte",
    "Lte",
    "And",
    "view_key",
    "parse_filter",
    "compile_query",
    # Codec and results
    "DocumentCodec",
    "encode",
    "decode",
    "ResultProjector",
    "project",
    # Writes
    "MutationEngine",
    "InsertResult",
    "BatchInsertResult",
    "DeleteResult",
    "UpdateResult",
    # Facade
    "Repository",
    "design_document",
    # Stores
    "StoreClient",
    "CouchStoreClient",
    "InMemoryStoreClient",
    # Config
    "Settings",
    "StoreSettings",
    "LoggingSettings",
    "setup_logging",
    # Errors
    "CouchViewError",
    "UnsupportedQueryError",
    "StaleEntryError",
    "DataIntegrityError",
    "ValidationError",
    "UnknownFieldError",
    "StoreError",
    "StoreConnectionError",
    "StoreConflictError",
    "StoreNotFoundError",
]
