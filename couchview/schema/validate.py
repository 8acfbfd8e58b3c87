"""
Record validation for couchview.

Records are checked against their entity before they are encoded, so a
bad record never reaches the store.

Invariants:
    - Validation errors are deterministic
    - Unknown fields suggest similar valid fields
    - Reserved fields (_id, _rev) are always accepted
"""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from difflib import get_close_matches
from typing import Any

from ..errors import UnknownFieldError, ValidationError
from .types import EmbeddedDef, EntityDef, FieldDef, FieldKind


def record_fields(record: Any) -> dict[str, Any]:
    """Return the field map of a record given as a dict or a dataclass."""
    if isinstance(record, dict):
        return record
    if is_dataclass(record) and not isinstance(record, type):
        return {f: getattr(record, f) for f in record.__dataclass_fields__}
    raise TypeError(f"Record must be a mapping or a dataclass instance, got {type(record).__name__}")


def validate_record(
    entity: EntityDef,
    record: Any,
    *,
    partial: bool = False,
) -> tuple[bool, list[str]]:
    """Validate a record against an entity.

    Args:
        entity: Entity to validate against
        record: Record to validate
        partial: Skip required-field checks (used for update changes)

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    values = record_fields(record)
    errors: list[str] = []

    known_fields = set(entity.get_field_names())
    for field_name in values:
        if field_name not in known_fields:
            suggestions = get_close_matches(field_name, list(known_fields), n=3)
            if suggestions:
                errors.append(f"Unknown field '{field_name}'. Did you mean: {suggestions}?")
            else:
                errors.append(f"Unknown field '{field_name}'")

    for field_def in entity.fields:
        if field_def.name not in values:
            if field_def.required and not partial and field_def.default is None:
                errors.append(f"Field '{field_def.name}' is required")
            continue

        error = _validate_embed(field_def, values[field_def.name])
        if error:
            errors.append(error)

    return len(errors) == 0, errors


def _validate_embed(field_def: FieldDef, value: Any) -> str | None:
    """Check the shape of an embedded value.

    Returns error message if invalid, None if valid.
    """
    if value is None or field_def.embed is None:
        return None

    if field_def.kind == FieldKind.EMBEDS_ONE:
        return _check_embedded_record(field_def.name, field_def.embed, value)

    if field_def.kind == FieldKind.EMBEDS_MANY:
        if not isinstance(value, (list, tuple)):
            return f"Field '{field_def.name}' must be a list, got {type(value).__name__}"
        for i, item in enumerate(value):
            error = _check_embedded_record(f"{field_def.name}[{i}]", field_def.embed, item)
            if error:
                return error

    return None


def _check_embedded_record(name: str, embed: EmbeddedDef, value: Any) -> str | None:
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if not isinstance(value, dict):
        return f"Field '{name}' must be a {embed.name} record, got {type(value).__name__}"
    unknown = set(value) - set(embed.get_field_names())
    if unknown:
        return f"Field '{name}' has unknown {embed.name} fields: {sorted(unknown)}"
    return None


def validate_or_raise(
    entity: EntityDef,
    record: Any,
    *,
    partial: bool = False,
) -> None:
    """Validate record and raise if invalid.

    Raises:
        UnknownFieldError: If unknown field is provided
        ValidationError: If validation fails
    """
    values = record_fields(record)
    known_fields = entity.get_field_names()
    unknown = [name for name in values if name not in known_fields]

    if unknown:
        field_name = unknown[0]
        suggestions = get_close_matches(field_name, known_fields, n=3)
        raise UnknownFieldError(field_name, entity.name, suggestions)

    is_valid, errors = validate_record(entity, values, partial=partial)
    if not is_valid:
        raise ValidationError(
            f"Validation failed for {entity.name}: {'; '.join(errors)}",
            errors=errors,
        )
