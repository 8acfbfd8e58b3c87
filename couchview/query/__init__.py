"""
Query module for couchview.

This module turns caller filters into view lookups:
- Predicate model (Eq, In, Gte, Lte, And) and Query
- Filter builder and expression parser
- Compiler producing a ViewQuery

Invariants:
    - A compiled query targets exactly one view
    - Only a single top-level where clause, AND-only, is accepted
"""

from .compiler import compile_predicate, compile_query, merge_options
from .filters import ViewRef, comparison, parse_filter, view_key
from .model import And, Compare, Eq, Gte, In, Lte, Predicate, Query, ViewQuery, all_of

__all__ = [
    # Model
    "Eq",
    "In",
    "Gte",
    "Lte",
    "And",
    "Compare",
    "Predicate",
    "Query",
    "ViewQuery",
    "all_of",
    # Builders
    "ViewRef",
    "view_key",
    "comparison",
    "parse_filter",
    # Compiler
    "compile_query",
    "compile_predicate",
    "merge_options",
]
