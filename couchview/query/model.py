"""
Query model for couchview.

Predicates are a small tagged variant over named views:

    Eq(view, value)      view key == value
    In(view, values)     view key in values
    Gte(view, value)     view key >= value
    Lte(view, value)     view key <= value
    And(p1, p2, ...)     conjunction

Compare(view, op, value) records any other comparison so that the
compiler can reject it with the offending clause attached.

Query carries the predicate clauses together with the parts of a
relational query the store cannot answer (joins, preloads, havings,
distinct); they are kept only so they can be refused explicitly.

ViewQuery is the compiled, executable form: one view plus its options.

Invariants:
    - All model objects are immutable
    - ViewQuery.options always contains include_docs=True
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Union

from ..errors import UnsupportedQueryError
from ..schema.types import EntityDef


class _Conjunctive:
    """Mixin giving predicates the & operator."""

    def __and__(self, other: Predicate) -> And:
        return And((self, other))

    def __or__(self, other: Any) -> Any:
        raise UnsupportedQueryError(
            "OR is not supported: a view lookup can only be narrowed",
            reason="unsupported_operation",
            clause=(self, "or", other),
        )


@dataclass(frozen=True)
class Eq(_Conjunctive):
    view: str
    value: Any


@dataclass(frozen=True)
class In(_Conjunctive):
    view: str
    values: tuple[Any, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))


@dataclass(frozen=True)
class Gte(_Conjunctive):
    view: str
    value: Any


@dataclass(frozen=True)
class Lte(_Conjunctive):
    view: str
    value: Any


@dataclass(frozen=True)
class Compare(_Conjunctive):
    """A comparison the store cannot express (>, <, !=)."""

    view: str
    op: str
    value: Any


@dataclass(frozen=True)
class And(_Conjunctive):
    predicates: tuple[Predicate, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "predicates", tuple(self.predicates))


Predicate = Union[Eq, In, Gte, Lte, Compare, And]
PREDICATE_TYPES = (Eq, In, Gte, Lte, Compare, And)


def all_of(*predicates: Predicate) -> And:
    """Conjunction of the given predicates."""
    return And(predicates)


@dataclass(frozen=True)
class Query:
    """A query against one entity.

    Built with chained calls, each returning a new Query:

        >>> q = Query(Post).where(view_key("all") >= "id2").select("_id", "title")

    Attributes:
        entity: Entity definition or registered entity name
        clauses: Top-level where clauses (at most one is supported)
        fields: Requested fields, None for all entity fields
        joins, preloads, havings, distinct_on: Unsupported; refused at compile
    """

    entity: EntityDef | str
    clauses: tuple[Predicate, ...] = ()
    fields: tuple[str, ...] | None = None
    joins: tuple[Any, ...] = ()
    preloads: tuple[Any, ...] = ()
    havings: tuple[Any, ...] = ()
    distinct_on: Any = None

    @property
    def entity_name(self) -> str:
        return self.entity if isinstance(self.entity, str) else self.entity.name

    def where(self, expr: Any) -> Query:
        """Add a where clause (a predicate or a filter expression)."""
        from .filters import parse_filter

        return replace(self, clauses=self.clauses + (parse_filter(expr),))

    def select(self, *fields: str) -> Query:
        return replace(self, fields=tuple(fields))

    def join(self, *targets: Any) -> Query:
        return replace(self, joins=self.joins + targets)

    def preload(self, *assocs: Any) -> Query:
        return replace(self, preloads=self.preloads + assocs)

    def having(self, *exprs: Any) -> Query:
        return replace(self, havings=self.havings + exprs)

    def distinct(self, on: Any = True) -> Query:
        return replace(self, distinct_on=on)


@dataclass(frozen=True)
class ViewQuery:
    """Compiled form of a query: the view to fetch and its options.

    Attributes:
        design: Design document name
        view: View name
        options: Read-only view options (key, keys, startkey, endkey, include_docs)
    """

    design: str
    view: str
    options: Mapping[str, Any]

    def __post_init__(self) -> None:
        options = dict(self.options)
        if "keys" in options:
            options["keys"] = tuple(options["keys"])
        object.__setattr__(self, "options", MappingProxyType(options))

    @property
    def target(self) -> tuple[str, str]:
        return (self.design, self.view)

    def to_dict(self) -> dict[str, Any]:
        return {"design": self.design, "view": self.view, "options": dict(self.options)}

    def __hash__(self) -> int:
        return hash((self.design, self.view, repr(sorted(self.options.items()))))

