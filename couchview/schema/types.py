"""
Schema types for couchview.

This module provides the declarations an application makes once at
startup to describe its documents:
- FieldDef: Individual field definition
- EmbeddedDef: Schema for records nested inside a document
- ViewDef: A view and the types of the components of its key
- DesignDef: A design document, i.e. a named group of views
- EntityDef: A document type stored in one database

These are plain frozen dataclasses, registered through ViewRegistry.
Nothing here talks to the store.

Invariants:
    - Every entity has a default design named after the entity
    - The default design always contains an "all" view keyed by _id
    - Every entity has the reserved "_id" and "_rev" fields
    - View key types are a non-empty tuple and never change once declared

Example:
    >>> Grant = EmbeddedDef("Grant", fields=(field("user", "string"), field("access", "string")))
    >>> Post = EntityDef(
    ...     name="Post",
    ...     source="posts",
    ...     fields=(
    ...         field("title", "string"),
    ...         field("body", "string"),
    ...         embeds_many("grants", Grant),
    ...     ),
    ...     designs=(
    ...         design("Post", view("by_title", ["string"])),
    ...         design("secondary", view("by_other", ["string"])),
    ...     ),
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any

ID_FIELD = "_id"
REV_FIELD = "_rev"
ALL_VIEW = "all"


class FieldKind(Enum):
    """Supported field types."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    BINARY_ID = "binary_id"
    JSON = "json"
    LIST = "list"
    EMBEDS_ONE = "embeds_one"
    EMBEDS_MANY = "embeds_many"

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string to FieldKind."""
        for kind in cls:
            if kind.value == value:
                return kind
        raise ValueError(f"Invalid field kind: {value}")

    @property
    def is_embed(self) -> bool:
        return self in (FieldKind.EMBEDS_ONE, FieldKind.EMBEDS_MANY)


@dataclass(frozen=True)
class FieldDef:
    """Field definition within an entity or embedded schema.

    Attributes:
        name: Field name, also the document key (verbatim)
        kind: Data type
        required: Whether the field must be present on insert
        default: Default value used when the field is not given
        embed: Embedded schema for EMBEDS_ONE / EMBEDS_MANY fields
        read_after_writes: Value is assigned by the store (e.g. _rev)
        description: Documentation
    """

    name: str
    kind: FieldKind
    required: bool = False
    default: Any = None
    embed: EmbeddedDef | None = None
    read_after_writes: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        """Validate field definition."""
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.kind.is_embed and self.embed is None:
            raise ValueError(f"embed schema required for {self.kind.value} field '{self.name}'")
        if self.embed is not None and not self.kind.is_embed:
            raise ValueError(f"Field '{self.name}' of kind {self.kind.value} cannot embed")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"name": self.name, "kind": self.kind.value}
        if self.required:
            result["required"] = True
        if self.default is not None:
            result["default"] = self.default
        if self.embed is not None:
            result["embed"] = self.embed.to_dict()
        if self.read_after_writes:
            result["read_after_writes"] = True
        if self.description:
            result["description"] = self.description
        return result


def field(
    name: str,
    kind: str | FieldKind,
    *,
    required: bool = False,
    default: Any = None,
    embed: EmbeddedDef | None = None,
    read_after_writes: bool = False,
    description: str = "",
) -> FieldDef:
    """Convenience function to create a FieldDef.

    Example:
        >>> title = field("title", "string", required=True)
    """
    if isinstance(kind, str):
        kind = FieldKind.from_str(kind)
    return FieldDef(
        name=name,
        kind=kind,
        required=required,
        default=default,
        embed=embed,
        read_after_writes=read_after_writes,
        description=description,
    )


def embeds_one(name: str, embed: EmbeddedDef, *, required: bool = False) -> FieldDef:
    """Declare a field holding a single embedded record."""
    return FieldDef(name=name, kind=FieldKind.EMBEDS_ONE, required=required, embed=embed)


def embeds_many(name: str, embed: EmbeddedDef, *, required: bool = False) -> FieldDef:
    """Declare a field holding a list of embedded records."""
    return FieldDef(name=name, kind=FieldKind.EMBEDS_MANY, required=required, embed=embed)


@dataclass(frozen=True)
class EmbeddedDef:
    """Schema of a record embedded inside a document.

    When record_type is given (typically a dataclass), loaded values are
    instances of it built from the declared fields; otherwise loaded
    values are dicts holding the declared fields.

    Attributes:
        name: Schema name
        fields: Field definitions
        record_type: Optional class used to materialize loaded values
    """

    name: str
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    record_type: type | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Embedded schema name cannot be empty")
        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field name in embedded schema '{self.name}'")

    def get_field_names(self) -> list[str]:
        """Get list of field names."""
        return [f.name for f in self.fields]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"name": self.name, "fields": [f.to_dict() for f in self.fields]}


@dataclass(frozen=True)
class ViewDef:
    """A view and the types of each component of its key.

    Attributes:
        name: View name inside its design document
        key_types: Types of the key components, e.g. ("string",)
    """

    name: str
    key_types: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("View name cannot be empty")
        if not self.key_types:
            raise ValueError(f"View '{self.name}' must declare at least one key type")


def view(name: str, key_types: list[str] | tuple[str, ...]) -> ViewDef:
    """Declare a view.

    Example:
        >>> by_title = view("by_title", ["string"])
    """
    return ViewDef(name=name, key_types=tuple(key_types))


@dataclass(frozen=True)
class DesignDef:
    """A design document: a named bundle of views.

    Attributes:
        name: Design document name (without the "_design/" prefix)
        views: Views declared in this design
    """

    name: str
    views: tuple[ViewDef, ...] = dataclass_field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Design name cannot be empty")
        names = [v.name for v in self.views]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate view name in design '{self.name}'")

    def get_view(self, name: str) -> ViewDef | None:
        for v in self.views:
            if v.name == name:
                return v
        return None


def design(name: str, *views: ViewDef) -> DesignDef:
    """Declare a design document holding the given views."""
    return DesignDef(name=name, views=tuple(views))


@dataclass(frozen=True)
class EntityDef:
    """Definition of a document type.

    Attributes:
        name: Entity name; also the name of its default design
        source: Database the documents live in
        fields: Field definitions (the reserved _id/_rev are added)
        designs: Design documents declared for this entity
        description: Documentation

    Example:
        >>> Flower = EntityDef(
        ...     name="Flower",
        ...     source="flowers",
        ...     fields=(field("name", "string"),),
        ...     designs=(design("Flower", view("by_name", ["string"])),),
        ... )
        >>> Flower.views()
        [('Flower', 'all'), ('Flower', 'by_name')]
    """

    name: str
    source: str
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    designs: tuple[DesignDef, ...] = dataclass_field(default_factory=tuple)
    description: str = ""

    def __post_init__(self) -> None:
        """Validate and normalize the entity definition."""
        if not self.name:
            raise ValueError("Entity name cannot be empty")
        if not self.source:
            raise ValueError(f"Entity '{self.name}' must name its database")

        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field name in entity '{self.name}'")

        design_names = [d.name for d in self.designs]
        if len(design_names) != len(set(design_names)):
            raise ValueError(f"Duplicate design name in entity '{self.name}'")

        reserved = []
        if ID_FIELD not in names:
            reserved.append(FieldDef(ID_FIELD, FieldKind.BINARY_ID))
        if REV_FIELD not in names:
            reserved.append(FieldDef(REV_FIELD, FieldKind.STRING, read_after_writes=True))
        if reserved:
            object.__setattr__(self, "fields", tuple(reserved) + tuple(self.fields))

        # The default design always carries the "all" view
        designs = list(self.designs)
        default = next((d for d in designs if d.name == self.name), None)
        if default is None:
            designs.append(DesignDef(self.name, (ViewDef(ALL_VIEW, ("string",)),)))
        elif default.get_view(ALL_VIEW) is None:
            index = designs.index(default)
            designs[index] = DesignDef(
                default.name, (ViewDef(ALL_VIEW, ("string",)),) + default.views
            )
        object.__setattr__(self, "designs", tuple(designs))

    @property
    def id_index(self) -> str:
        """Name reported for identifier uniqueness violations."""
        return f"{self.source}_id_index"

    def get_field(self, name: str) -> FieldDef | None:
        """Get field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_field_names(self) -> list[str]:
        """Get list of field names, reserved fields first."""
        return [f.name for f in self.fields]

    def embedded_fields(self) -> dict[str, FieldDef]:
        """Fields holding embedded records, by name."""
        return {f.name: f for f in self.fields if f.kind.is_embed}

    # Reflection

    def design_names(self) -> list[str]:
        """Names of all declared designs."""
        return [d.name for d in self.designs]

    def default_design(self) -> str:
        """Design used to resolve view names in queries."""
        return self.name

    def views(self) -> list[tuple[str, str]]:
        """All (design, view) pairs."""
        return [(d.name, v.name) for d in self.designs for v in d.views]

    def view_key_types(self, design_name: str, view_name: str) -> tuple[str, ...] | None:
        """Key types of a view, or None when not declared."""
        for d in self.designs:
            if d.name == design_name:
                v = d.get_view(view_name)
                return v.key_types if v else None
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "source": self.source,
            "fields": [f.to_dict() for f in self.fields],
            "designs": [
                {
                    "name": d.name,
                    "views": [{"name": v.name, "key_types": list(v.key_types)} for v in d.views],
                }
                for d in self.designs
            ],
            "description": self.description,
        }

    def __hash__(self) -> int:
        return hash((self.name, self.source))
