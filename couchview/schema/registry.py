"""
View registry for couchview.

This module holds the per-entity metadata the query compiler and the
repository consult:
- Registering entities
- Lookup by entity name or database name
- Schema fingerprinting

The registry is built once at startup and frozen to prevent runtime
modifications.

Example:
    >>> from couchview import get_registry, EntityDef, field
    >>>
    >>> Post = EntityDef(name="Post", source="posts", fields=(field("title", "string"),))
    >>> registry = get_registry()
    >>> registry.register(Post)
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Iterator

from .types import EntityDef

logger = logging.getLogger(__name__)

# Global registry
_global_registry: ViewRegistry | None = None
_registry_lock = threading.Lock()


class RegistryFrozenError(Exception):
    """Registry is frozen and cannot be modified."""

    pass


class DuplicateRegistrationError(Exception):
    """An entity with this name or database is already registered."""

    pass


class ViewRegistry:
    """Registry of entity definitions and their views.

    Example:
        >>> registry = ViewRegistry()
        >>> registry.register(Post)
        >>> registry.freeze()
        >>> registry.get("Post").view_key_types("Post", "by_title")
        ('string',)
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._entities: dict[str, EntityDef] = {}
        self._entities_by_source: dict[str, EntityDef] = {}
        self._frozen = False
        self._fingerprint: str | None = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether registry is frozen."""
        return self._frozen

    @property
    def fingerprint(self) -> str | None:
        """Schema fingerprint (available after freeze)."""
        return self._fingerprint

    def register(self, entity: EntityDef) -> EntityDef:
        """Register an entity.

        Args:
            entity: EntityDef to register

        Returns:
            The registered entity, for use as a module-level constant

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If name or database already registered
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Cannot register: registry is frozen")

            if entity.name in self._entities:
                raise DuplicateRegistrationError(f"entity '{entity.name}' already registered")

            if entity.source in self._entities_by_source:
                existing = self._entities_by_source[entity.source]
                raise DuplicateRegistrationError(
                    f"database '{entity.source}' already registered for '{existing.name}'"
                )

            self._entities[entity.name] = entity
            self._entities_by_source[entity.source] = entity

        logger.debug(
            "Entity registered",
            extra={"entity": entity.name, "source": entity.source, "views": entity.views()},
        )
        return entity

    def get(self, name: str) -> EntityDef | None:
        """Get entity by name."""
        return self._entities.get(name)

    def get_by_source(self, source: str) -> EntityDef | None:
        """Get entity by database name."""
        return self._entities_by_source.get(source)

    def require(self, name: str) -> EntityDef:
        """Get entity by name, raising KeyError when missing."""
        entity = self._entities.get(name)
        if entity is None:
            raise KeyError(f"Unknown entity '{name}'")
        return entity

    def entities(self) -> Iterator[EntityDef]:
        """Iterate over all entities."""
        yield from self._entities.values()

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def freeze(self) -> str:
        """Freeze registry and compute fingerprint.

        Returns:
            Schema fingerprint

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            self._fingerprint = self._compute_fingerprint()
            self._frozen = True

        logger.info(
            "View registry frozen",
            extra={"entities": len(self._entities), "fingerprint": self._fingerprint},
        )
        return self._fingerprint

    def _compute_fingerprint(self) -> str:
        """Compute SHA-256 fingerprint."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        hash_bytes = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"sha256:{hash_bytes}"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "entities": [self._entities[name].to_dict() for name in sorted(self._entities.keys())]
        }

    def to_json(self, indent: int | None = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)


def get_registry() -> ViewRegistry:
    """Get the global view registry."""
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = ViewRegistry()
        return _global_registry


def register_entity(entity: EntityDef) -> EntityDef:
    """Register an entity in the global registry."""
    return get_registry().register(entity)


def reset_registry() -> None:
    """Reset the global registry (for testing only)."""
    global _global_registry
    with _registry_lock:
        _global_registry = None
