"""
Repository facade for couchview.

Ties the pieces together for application code: entities are resolved
through a ViewRegistry, database names through StoreSettings, queries
through the compiler and projector, and writes through the
MutationEngine.

Example:
    >>> store = CouchStoreClient(settings.store)
    >>> repo = Repository(store, registry, settings.store)
    >>> repo.insert("Post", {"_id": "FOO", "title": "hello"})
    >>> repo.all(Query("Post").where(view_key("all") >= "id2"))

Invariants:
    - The store client is owned by the caller; the repository never closes it
    - Queries are compiled before any request is made
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from .codec import DocumentCodec
from .config import StoreSettings
from .engine import BatchInsertResult, DeleteResult, InsertResult, MutationEngine, UpdateResult
from .errors import StoreNotFoundError
from .projector import project
from .query.compiler import compile_query
from .query.model import Query
from .schema.registry import ViewRegistry, get_registry
from .schema.types import ALL_VIEW, ID_FIELD, REV_FIELD, EntityDef
from .store.base import DatabaseHandle, StoreClient

logger = logging.getLogger(__name__)

DEFAULT_ALL_MAP = "function(doc) { emit(doc._id, doc) }"

# design name -> view name -> JavaScript map source
MapSources = Mapping[str, Mapping[str, str]]


def design_document(
    entity: EntityDef,
    maps: Mapping[str, str] | None = None,
    design: str | None = None,
) -> dict[str, Any]:
    """Build the design document for one of an entity's designs.

    Args:
        entity: Entity owning the design
        maps: View name -> JavaScript map source
        design: Design name (defaults to the entity's default design)

    Returns:
        Document with _id "_design/<design>" and one map per declared view

    Raises:
        KeyError: If the design is not declared
        ValueError: If a declared view has no map source
    """
    design = design or entity.default_design()
    declared = next((d for d in entity.designs if d.name == design), None)
    if declared is None:
        raise KeyError(f"Design '{design}' is not declared for {entity.name}")

    sources = dict(maps or {})
    if design == entity.default_design():
        sources.setdefault(ALL_VIEW, DEFAULT_ALL_MAP)

    views = {}
    for view_def in declared.views:
        source = sources.get(view_def.name)
        if source is None:
            raise ValueError(f"No map source for view '{design}/{view_def.name}' of {entity.name}")
        views[view_def.name] = {"map": source}

    return {"_id": f"_design/{design}", "language": "javascript", "views": views}


class Repository:
    """Entry point for queries and writes against registered entities.

    Attributes:
        store: Store client (owned by the caller)
        registry: Registry used to resolve entity names
        settings: Store settings used for database naming
        engine: Mutation engine bound to the store
    """

    def __init__(
        self,
        store: StoreClient,
        registry: ViewRegistry | None = None,
        settings: StoreSettings | None = None,
    ) -> None:
        self.store = store
        self.registry = registry or get_registry()
        self.settings = settings or StoreSettings()
        self.engine = MutationEngine(store)
        self._handles: dict[str, DatabaseHandle] = {}
        self._lock = threading.Lock()

    def entity(self, entity: EntityDef | str) -> EntityDef:
        """Resolve an entity name through the registry.

        Raises:
            KeyError: If the name is not registered
        """
        if isinstance(entity, EntityDef):
            return entity
        return self.registry.require(entity)

    def database(self, entity: EntityDef | str) -> DatabaseHandle:
        """Open (once) the database holding an entity's documents."""
        entity = self.entity(entity)
        name = self.settings.database_name(entity.source)
        with self._lock:
            handle = self._handles.get(name)
            if handle is None:
                handle = self.store.open(name)
                self._handles[name] = handle
        return handle

    # Reads

    def all(
        self,
        query: Query | EntityDef | str,
        fields: Iterable[str] | None = None,
        where: Any = None,
    ) -> list[dict[str, Any]]:
        """Run a query and return the matching records in view order.

        Args:
            query: Query, or an entity (name) to list everything
            fields: Fields to return (defaults to the query's selection,
                then to every entity field)
            where: Filter added to an entity given directly

        Raises:
            UnsupportedQueryError: If the query needs more than one view lookup
            DataIntegrityError: If a row comes back without its document
        """
        if not isinstance(query, Query):
            query = Query(query)
            if where is not None:
                query = query.where(where)

        entity = self.entity(query.entity)
        compiled = compile_query(query, entity)

        if fields is None:
            fields = query.fields if query.fields is not None else entity.get_field_names()

        rows = self.store.fetch_view(self.database(entity), compiled.design, compiled.view, compiled.options)
        records = list(project(rows, list(fields), entity))
        logger.debug(
            "Query answered",
            extra={"entity": entity.name, "view": compiled.view, "rows": len(records)},
        )
        return records

    def get(
        self,
        entity: EntityDef | str,
        doc_id: str,
        fields: Iterable[str] | None = None,
    ) -> dict[str, Any] | None:
        """Fetch one record by identifier, or None if it does not exist."""
        entity = self.entity(entity)
        try:
            document = self.store.fetch(self.database(entity), doc_id)
        except StoreNotFoundError:
            return None
        names = list(fields) if fields is not None else entity.get_field_names()
        return DocumentCodec(entity).decode(document, names)

    # Writes

    def insert(
        self,
        entity: EntityDef | str,
        record: Any,
        returning: Iterable[str] = (ID_FIELD, REV_FIELD),
    ) -> InsertResult:
        entity = self.entity(entity)
        return self.engine.insert(self.database(entity), entity, record, returning)

    def insert_all(
        self,
        entity: EntityDef | str,
        records: Iterable[Any],
        returning: Iterable[str] | None = None,
    ) -> BatchInsertResult:
        entity = self.entity(entity)
        return self.engine.insert_all(self.database(entity), entity, records, returning)

    def update(
        self,
        entity: EntityDef | str,
        doc_id: str,
        rev: str,
        changes: Any,
        returning: Iterable[str] = (),
    ) -> UpdateResult:
        entity = self.entity(entity)
        return self.engine.update(self.database(entity), entity, doc_id, rev, changes, returning)

    def delete(self, entity: EntityDef | str, doc_id: str, rev: str) -> DeleteResult:
        entity = self.entity(entity)
        return self.engine.delete(self.database(entity), entity, doc_id, rev)

    # Design documents

    def sync_designs(
        self,
        entity: EntityDef | str,
        maps: MapSources | None = None,
    ) -> dict[str, str]:
        """Save the design documents of an entity, replacing existing ones.

        Args:
            entity: Entity whose designs are saved
            maps: Design name -> view name -> JavaScript map source

        Returns:
            Design name -> new revision
        """
        entity = self.entity(entity)
        db = self.database(entity)
        maps = maps or {}

        revisions = {}
        for design in entity.design_names():
            document = design_document(entity, maps.get(design), design)
            try:
                document[REV_FIELD] = self.store.fetch(db, document[ID_FIELD])[REV_FIELD]
            except StoreNotFoundError:
                pass
            saved = self.store.save(db, document)
            revisions[design] = saved[REV_FIELD]
            logger.info(
                "Design document saved",
                extra={"entity": entity.name, "design": design, "rev": saved[REV_FIELD]},
            )
        return revisions

