"""
YAML schema format for couchview.

Entities can be declared in a configuration file instead of Python code.
The file is read once at startup and its entities registered.

Example schema:
    embedded:
      - name: Grant
        fields:
          - {name: user, kind: string}
          - {name: access, kind: string}

    entities:
      - name: Post
        source: posts
        fields:
          - {name: title, kind: string, required: true}
          - {name: grants, kind: embeds_many, embed: Grant}
        designs:
          - name: Post
            views:
              - {name: by_title, key_types: [string]}
          - name: secondary
            views:
              - {name: by_other, key_types: [string]}
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .registry import ViewRegistry
from .types import DesignDef, EmbeddedDef, EntityDef, FieldDef, FieldKind, ViewDef


class SchemaFormatError(ValueError):
    """Schema file is malformed."""

    pass


def parse_schema(data: dict[str, Any]) -> list[EntityDef]:
    """Build entity definitions from a parsed schema mapping.

    Args:
        data: Mapping with optional "embedded" and required "entities" lists

    Returns:
        Entity definitions in file order

    Raises:
        SchemaFormatError: If the mapping is malformed
    """
    if not isinstance(data, dict):
        raise SchemaFormatError("Schema must be a mapping")

    embedded: dict[str, EmbeddedDef] = {}
    for raw in data.get("embedded") or []:
        name = raw.get("name")
        fields = tuple(_parse_field(f, embedded, name) for f in raw.get("fields") or [])
        embedded[name] = EmbeddedDef(name=name, fields=fields)

    entities = []
    for raw in data.get("entities") or []:
        name = raw.get("name")
        try:
            entities.append(
                EntityDef(
                    name=name,
                    source=raw.get("source", ""),
                    fields=tuple(_parse_field(f, embedded, name) for f in raw.get("fields") or []),
                    designs=tuple(_parse_design(d) for d in raw.get("designs") or []),
                    description=raw.get("description", ""),
                )
            )
        except SchemaFormatError:
            raise
        except ValueError as e:
            raise SchemaFormatError(f"Entity '{name}': {e}") from e

    return entities


def _parse_field(raw: dict[str, Any], embedded: dict[str, EmbeddedDef], owner: str) -> FieldDef:
    try:
        kind = FieldKind.from_str(raw.get("kind", ""))
    except ValueError as e:
        raise SchemaFormatError(f"{owner}.{raw.get('name')}: {e}") from e

    embed = None
    if kind.is_embed:
        embed_name = raw.get("embed")
        if embed_name not in embedded:
            raise SchemaFormatError(f"{owner}.{raw.get('name')}: unknown embedded schema '{embed_name}'")
        embed = embedded[embed_name]

    return FieldDef(
        name=raw.get("name", ""),
        kind=kind,
        required=bool(raw.get("required", False)),
        default=raw.get("default"),
        embed=embed,
        read_after_writes=bool(raw.get("read_after_writes", False)),
        description=raw.get("description", ""),
    )


def _parse_design(raw: dict[str, Any]) -> DesignDef:
    views = tuple(
        ViewDef(name=v.get("name", ""), key_types=tuple(v.get("key_types") or ()))
        for v in raw.get("views") or []
    )
    return DesignDef(name=raw.get("name", ""), views=views)


def load_schema_file(path: str | Path, registry: ViewRegistry | None = None) -> list[EntityDef]:
    """Read a YAML schema file, registering its entities when a registry is given."""
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    entities = parse_schema(data)
    if registry is not None:
        for entity in entities:
            registry.register(entity)
    return entities
