"""
Filter builder and expression parser.

Callers rarely build Eq/In/Gte/Lte nodes by hand. Two front ends turn
their filter expressions into predicates:

Operator builder:
    >>> (view_key("all") >= "id2") & (view_key("all") <= "id2")
    And(predicates=(Gte(view='all', value='id2'), Lte(view='all', value='id2')))
    >>> view_key("all").in_(["id1", "id2"])
    In(view='all', values=('id1', 'id2'))

Expression parser (tuples and mappings, e.g. from JSON request bodies):
    >>> parse_filter(("and", ("all", ">=", "id2"), ("all", "<=", "id2")))
    >>> parse_filter({"all": {">=": "id2", "<=": "id2"}})
    >>> parse_filter({"by_title": "Hello"})

Strict comparisons (>, <, !=) are accepted by both front ends and
refused by the compiler, which reports the clause it could not express.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..errors import UnsupportedQueryError
from .model import PREDICATE_TYPES, And, Compare, Eq, Gte, In, Lte, Predicate

UNSUPPORTED_OPS = (">", "<", "!=")
OPERATORS = ("==", "=", "in", ">=", "<=") + UNSUPPORTED_OPS


class ViewRef:
    """Reference to a view of the queried entity, used to build predicates."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __eq__(self, value: Any) -> Eq:  # type: ignore[override]
        return Eq(self.name, value)

    def __ne__(self, value: Any) -> Compare:  # type: ignore[override]
        return Compare(self.name, "!=", value)

    def __ge__(self, value: Any) -> Gte:
        return Gte(self.name, value)

    def __le__(self, value: Any) -> Lte:
        return Lte(self.name, value)

    def __gt__(self, value: Any) -> Compare:
        return Compare(self.name, ">", value)

    def __lt__(self, value: Any) -> Compare:
        return Compare(self.name, "<", value)

    def in_(self, values: Any) -> In:
        return In(self.name, tuple(values))

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"view_key({self.name!r})"


def view_key(name: str) -> ViewRef:
    """Reference a view by name for use in filter expressions."""
    return ViewRef(name)


def comparison(view_name: str, op: str, value: Any) -> Predicate:
    """Build the predicate for `view_name op value`.

    Raises:
        UnsupportedQueryError: If op is not a known comparator
    """
    if op in ("==", "="):
        return Eq(view_name, value)
    if op == "in":
        if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
            raise UnsupportedQueryError(
                f"'in' expects a list of keys for view '{view_name}'",
                reason="unsupported_operation",
                clause=(view_name, op, value),
            )
        return In(view_name, tuple(value))
    if op == ">=":
        return Gte(view_name, value)
    if op == "<=":
        return Lte(view_name, value)
    if op in UNSUPPORTED_OPS:
        return Compare(view_name, op, value)
    raise UnsupportedQueryError(
        f"Unknown operator '{op}'", reason="unsupported_operation", clause=(view_name, op, value)
    )


def _is_operator_map(condition: Mapping) -> bool:
    return not condition or all(str(op).lower() in OPERATORS for op in condition)


def parse_filter(expr: Any) -> Predicate:
    """Turn a filter expression into a predicate.

    Accepted forms:
        - a predicate (returned as is)
        - ("and", expr, expr, ...)
        - (view, op, value)
        - {view: value} for equality, {view: {op: value, ...}} for several
          conditions on one view; several keys are conjoined. A mapping
          value is read as conditions only when every key is an operator,
          otherwise it is the key to match: {"by_stats": {"visits": 1}}

    Raises:
        UnsupportedQueryError: If the expression cannot be understood
    """
    if isinstance(expr, PREDICATE_TYPES):
        return expr

    if isinstance(expr, tuple) and expr:
        head = expr[0]
        if isinstance(head, str) and head.lower() == "and":
            if len(expr) < 2:
                raise UnsupportedQueryError("'and' needs at least one operand", clause=expr)
            return And(tuple(parse_filter(e) for e in expr[1:]))
        if isinstance(head, str) and head.lower() == "or":
            raise UnsupportedQueryError(
                "OR is not supported: a view lookup can only be narrowed", clause=expr
            )
        if len(expr) == 3 and isinstance(head, (str, ViewRef)):
            name = head.name if isinstance(head, ViewRef) else head
            return comparison(name, str(expr[1]).lower(), expr[2])

    if isinstance(expr, Mapping) and expr:
        parts: list[Predicate] = []
        for name, condition in expr.items():
            if isinstance(condition, Mapping) and _is_operator_map(condition):
                if not condition:
                    raise UnsupportedQueryError(f"Empty condition for view '{name}'", clause=expr)
                parts.extend(comparison(name, str(op).lower(), v) for op, v in condition.items())
            else:
                parts.append(Eq(name, condition))
        return parts[0] if len(parts) == 1 else And(tuple(parts))

    raise UnsupportedQueryError(f"Cannot interpret filter expression: {expr!r}", clause=expr)
