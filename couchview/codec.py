"""
Document codec for couchview.

Converts between records (dicts or dataclass instances, possibly holding
nested records and lists) and the generic JSON documents the store
keeps.

Encoding is recursive and structural: keys are stringified verbatim and
None is written as an explicit null, so a field that is present but
empty stays distinguishable from a field that is absent.

Decoding is driven by the list of requested fields, not by the
document. Nested values are handed back untouched unless a loader is
registered for the field, in which case the loader materializes the
embedded record(s).

Invariants:
    - encode() never drops a key, including keys whose value is None
    - decode() returns exactly the requested fields, in request order
    - Both directions are pure
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import is_dataclass
from typing import Any

from .schema.types import EmbeddedDef, EntityDef, FieldKind
from .schema.validate import record_fields

Document = dict[str, Any]
Loader = Callable[[Any], Any]


def encode(record: Any) -> Document:
    """Encode a record into a document.

    Args:
        record: Field map or dataclass instance

    Returns:
        Document with string keys
    """
    return {str(name): _encode_value(value) for name, value in record_fields(record).items()}


def _encode_value(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_encode_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(name): _encode_value(item) for name, item in value.items()}
    if is_dataclass(value) and not isinstance(value, type):
        return encode(value)
    return value


def encode_value(value: Any) -> Any:
    """Encode a single field value (used for partial updates)."""
    return _encode_value(value)


def decode(
    document: Mapping[str, Any],
    fields: list[str] | tuple[str, ...],
    loaders: Mapping[str, Loader] | None = None,
) -> dict[str, Any]:
    """Decode the requested fields of a document.

    Args:
        document: Document as returned by the store
        fields: Requested field names, in output order
        loaders: Optional per-field loaders for embedded values

    Returns:
        Ordered field map; missing fields are None
    """
    loaders = loaders or {}
    record: dict[str, Any] = {}
    for name in fields:
        value = document.get(str(name))
        loader = loaders.get(name)
        if loader is not None and value is not None:
            value = loader(value)
        record[name] = value
    return record


def load_embedded(embed: EmbeddedDef, value: Any) -> Any:
    """Materialize one embedded record from its raw document.

    Unknown keys are ignored; declared fields that are missing take the
    record type's default (or None for dict records).

    Raises:
        TypeError: If value is not a mapping
    """
    if not isinstance(value, Mapping):
        raise TypeError(f"Embedded {embed.name} must be a mapping, got {type(value).__name__}")

    names = embed.get_field_names()
    if embed.record_type is not None:
        return embed.record_type(**{name: value[name] for name in names if name in value})
    return {name: value.get(name) for name in names}


def load_embedded_many(embed: EmbeddedDef, values: Any) -> list[Any]:
    """Materialize a list of embedded records.

    Raises:
        TypeError: If values is not a list
    """
    if not isinstance(values, list):
        raise TypeError(f"Embedded {embed.name} list must be a list, got {type(values).__name__}")
    return [load_embedded(embed, value) for value in values]


def embedded_loaders(entity: EntityDef) -> dict[str, Loader]:
    """Build the loaders for every embedded field of an entity."""
    loaders: dict[str, Loader] = {}
    for name, field_def in entity.embedded_fields().items():
        embed = field_def.embed
        if field_def.kind == FieldKind.EMBEDS_ONE:
            loaders[name] = lambda value, embed=embed: load_embedded(embed, value)
        else:
            loaders[name] = lambda values, embed=embed: load_embedded_many(embed, values)
    return loaders


class DocumentCodec:
    """Codec bound to an entity's embedded loaders.

    Example:
        >>> codec = DocumentCodec(Post)
        >>> doc = codec.encode({"title": "t1", "stats": Stats(visits=1, time=10)})
        >>> codec.decode(doc, ["title", "stats"])
        {'title': 't1', 'stats': Stats(visits=1, time=10)}
    """

    def __init__(self, entity: EntityDef | None = None) -> None:
        self.entity = entity
        self._loaders = embedded_loaders(entity) if entity is not None else {}

    def encode(self, record: Any) -> Document:
        return encode(record)

    def decode(self, document: Mapping[str, Any], fields: list[str] | tuple[str, ...]) -> dict[str, Any]:
        return decode(document, fields, self._loaders)
