"""
Filter/sort compiler: turns client-supplied query strings into predicates and sort plans.
"""

from .fields import (
    FieldKind,
    FieldSpec,
    FieldTable,
    bool_field,
    date_field,
    datetime_field,
    decimal_field,
    enum_field,
    float_field,
    int_field,
    string_field,
    uuid_field,
)
from .grammar import FilterClause, FilterExpression, FilterParser, RelationalOperator
from .predicate import Predicate, PredicateBuilder, as_predicate
from .query import QueryRequest
from .sorting import SortCriterion, SortDirection, SortParser, Sorting, sort_entities

__all__ = [
    "FieldKind",
    "FieldSpec",
    "FieldTable",
    "bool_field",
    "date_field",
    "datetime_field",
    "decimal_field",
    "enum_field",
    "float_field",
    "int_field",
    "string_field",
    "uuid_field",
    "FilterClause",
    "FilterExpression",
    "FilterParser",
    "RelationalOperator",
    "Predicate",
    "PredicateBuilder",
    "as_predicate",
    "QueryRequest",
    "SortCriterion",
    "SortDirection",
    "SortParser",
    "Sorting",
    "sort_entities",
]
