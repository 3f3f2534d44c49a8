"""
Document selection helpers.

Provides:
- Server-side query expressions (``NAME = [VALUE] | ...``)
- Client-side predicates over a document's field map
"""

from .dialog_expression import (
    QueryCondition,
    QuerySyntaxError,
    build_query_body,
    parse_query,
)
from .predicate import Predicate, PredicateSyntaxError, compile_predicate

__all__ = [
    "Predicate",
    "PredicateSyntaxError",
    "QueryCondition",
    "QuerySyntaxError",
    "build_query_body",
    "compile_predicate",
    "parse_query",
]
