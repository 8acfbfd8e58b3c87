"""
Predicate compiler for couchview.

Turns a Query over one entity into the single view fetch that answers
it. CouchDB views admit exactly one lookup shape per request: one exact
key, a set of keys, or a key range. The compiler therefore accepts only
predicate trees that collapse into one of those shapes on one view and
refuses everything else before any request is made.

    Eq(v, x)                    -> v  {key: x}
    In(v, xs)                   -> v  {keys: xs}
    Gte(v, x)                   -> v  {startkey: x}
    Lte(v, x)                   -> v  {endkey: x}
    And(p1, p2, ...)            -> fold, same view only
    (no where clause)           -> all {}

Conjunction merges options key by key: two key sets intersect (keeping
the order of the first), any other repeated option must carry the same
value. include_docs is always requested.

Invariants:
    - Compilation is pure and deterministic
    - A ViewQuery never targets more than one view
    - key/keys never coexist with each other or with a range bound
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import UnsupportedQueryError
from ..schema.types import ALL_VIEW, EntityDef
from .model import PREDICATE_TYPES, And, Compare, Eq, Gte, In, Lte, Predicate, Query, ViewQuery

logger = logging.getLogger(__name__)

Options = dict[str, Any]

_EXACT_OPTIONS = ("key", "keys")
_RANGE_OPTIONS = ("startkey", "endkey")


def compile_query(query: Query | Predicate | None, entity: EntityDef) -> ViewQuery:
    """Compile a query (or a bare predicate) against an entity.

    Args:
        query: Query, single predicate, or None for "everything"
        entity: Metadata of the queried entity

    Returns:
        The view to fetch and its options

    Raises:
        UnsupportedQueryError: If the query cannot be answered by one view lookup
    """
    if query is None:
        query = Query(entity)
    elif isinstance(query, PREDICATE_TYPES):
        query = Query(entity, clauses=(query,))

    _reject_unsupported(query)

    design = entity.default_design()

    if not query.clauses:
        compiled = ViewQuery(design, ALL_VIEW, {"include_docs": True})
    else:
        if len(query.clauses) > 1:
            raise UnsupportedQueryError(
                f"Only one where clause is supported, got {len(query.clauses)}; "
                "combine conditions with and",
                reason="multiple_where_clauses",
                clause=query.clauses,
            )

        view_name, options = compile_predicate(query.clauses[0])

        if entity.view_key_types(design, view_name) is None:
            raise UnsupportedQueryError(
                f"View '{view_name}' is not declared in design '{design}' of {entity.name}",
                reason="unknown_view",
                clause=query.clauses[0],
            )

        options["include_docs"] = True
        compiled = ViewQuery(design, view_name, options)

    logger.debug(
        "Compiled view query",
        extra={"entity": entity.name, "design": compiled.design, "view": compiled.view},
    )
    return compiled


def _reject_unsupported(query: Query) -> None:
    if query.joins:
        raise UnsupportedQueryError(
            "Joins are not supported", reason="unsupported_operation", clause=query.joins
        )
    if query.preloads:
        raise UnsupportedQueryError(
            "Preloads are not supported", reason="unsupported_operation", clause=query.preloads
        )
    if query.havings:
        raise UnsupportedQueryError(
            "Havings are not supported", reason="unsupported_operation", clause=query.havings
        )
    if query.distinct_on is not None:
        raise UnsupportedQueryError(
            "Distinct is not supported", reason="unsupported_operation", clause=query.distinct_on
        )


def compile_predicate(predicate: Predicate) -> tuple[str, Options]:
    """Compile one predicate tree to (view name, options).

    include_docs is not added here; see compile_query().
    """
    if isinstance(predicate, Eq):
        return predicate.view, {"key": predicate.value}
    if isinstance(predicate, In):
        return predicate.view, {"keys": tuple(predicate.values)}
    if isinstance(predicate, Gte):
        return predicate.view, {"startkey": predicate.value}
    if isinstance(predicate, Lte):
        return predicate.view, {"endkey": predicate.value}
    if isinstance(predicate, And):
        return _compile_and(predicate)
    if isinstance(predicate, Compare):
        raise UnsupportedQueryError(
            f"Operator '{predicate.op}' is not supported on view '{predicate.view}'; "
            "use ==, in, >= or <=",
            reason="unsupported_operation",
            clause=predicate,
        )
    raise UnsupportedQueryError(
        f"Unsupported predicate: {predicate!r}", reason="unsupported_operation", clause=predicate
    )


def _compile_and(predicate: And) -> tuple[str, Options]:
    if not predicate.predicates:
        raise UnsupportedQueryError(
            "Empty conjunction", reason="unsupported_operation", clause=predicate
        )

    first, *rest = predicate.predicates
    view_name, options = compile_predicate(first)
    for child in rest:
        child_view, child_options = compile_predicate(child)
        if child_view != view_name:
            raise UnsupportedQueryError(
                f"Cannot combine views '{view_name}' and '{child_view}' in one lookup",
                reason="cross_view_conjunction",
                clause=predicate,
            )
        options = merge_options(options, child_options, clause=predicate)
    return view_name, options


def merge_options(left: Options, right: Options, clause: Any = None) -> Options:
    """Merge the options of two conjoined predicates on the same view.

    Raises:
        UnsupportedQueryError: If the merged options conflict
    """
    merged = dict(left)
    for name, value in right.items():
        if name not in merged:
            merged[name] = value
        elif name == "keys":
            merged[name] = tuple(k for k in merged[name] if k in value)
        elif merged[name] != value:
            raise UnsupportedQueryError(
                f"Conflicting values for {name}: {merged[name]!r} and {value!r}",
                reason="conflicting_bound",
                clause=clause,
            )

    anchors = [name for name in _EXACT_OPTIONS + _RANGE_OPTIONS if name in merged]
    exact = [name for name in anchors if name in _EXACT_OPTIONS]
    if exact and len(anchors) > 1:
        raise UnsupportedQueryError(
            f"Cannot combine {' and '.join(anchors)} in one lookup",
            reason="conflicting_bound",
            clause=clause,
        )
    return merged
