"""
Schema module for couchview.

This module declares what documents look like and which views exist:
- Entity, embedded, field, design and view definitions
- ViewRegistry for entity lookup
- Record validation
- YAML schema loading

Invariants:
    - Every entity has a default design named after it with an "all" view
    - View key types are immutable once declared
    - All entities must be registered before the registry is frozen
"""

from .loader import SchemaFormatError, load_schema_file, parse_schema
from .registry import (
    DuplicateRegistrationError,
    RegistryFrozenError,
    ViewRegistry,
    get_registry,
    register_entity,
    reset_registry,
)
from .types import (
    ALL_VIEW,
    ID_FIELD,
    REV_FIELD,
    DesignDef,
    EmbeddedDef,
    EntityDef,
    FieldDef,
    FieldKind,
    ViewDef,
    design,
    embeds_many,
    embeds_one,
    field,
    view,
)
from .validate import record_fields, validate_or_raise, validate_record

__all__ = [
    # Types
    "ALL_VIEW",
    "ID_FIELD",
    "REV_FIELD",
    "DesignDef",
    "EmbeddedDef",
    "EntityDef",
    "FieldDef",
    "FieldKind",
    "ViewDef",
    "design",
    "embeds_many",
    "embeds_one",
    "field",
    "view",
    # Registry
    "ViewRegistry",
    "get_registry",
    "register_entity",
    "reset_registry",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    # Validation
    "record_fields",
    "validate_record",
    "validate_or_raise",
    # Loading
    "SchemaFormatError",
    "load_schema_file",
    "parse_schema",
]
