"""
Result projector for couchview.

Turns the rows of a view fetch into records. Every compiled query asks
for include_docs, so each row must carry its document under "doc"; a
row without one means the view and the database disagree and is
reported instead of skipped.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from .codec import DocumentCodec
from .errors import DataIntegrityError
from .schema.types import EntityDef


def project(
    rows: Iterable[Mapping[str, Any]],
    fields: list[str] | tuple[str, ...],
    entity: EntityDef | None = None,
) -> Iterator[dict[str, Any]]:
    """Decode the requested fields from each row's document, in row order.

    Args:
        rows: View rows as returned by the store
        fields: Requested field names
        entity: Entity whose embedded loaders apply (optional)

    Yields:
        One record per row

    Raises:
        DataIntegrityError: If a row has no document
    """
    codec = DocumentCodec(entity)
    for row in rows:
        document = row.get("doc")
        if document is None:
            raise DataIntegrityError(
                f"View row '{row.get('id')}' has no document; was include_docs requested?",
                row=dict(row),
            )
        yield codec.decode(document, fields)


class ResultProjector:
    """Projector bound to an entity and a field list."""

    def __init__(self, entity: EntityDef | None, fields: list[str] | tuple[str, ...]) -> None:
        self.entity = entity
        self.fields = list(fields)

    def __call__(self, rows: Iterable[Mapping[str, Any]]) -> Iterator[dict[str, Any]]:
        return project(rows, self.fields, self.entity)
