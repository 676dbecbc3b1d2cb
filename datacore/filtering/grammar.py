"""
Filter string grammar.

    filter  := clause (";" clause)*
    clause  := field ":" operator ":" value ("," value)*
    value   := bare-text | '"' quoted-text '"'

Quoted values may contain any separator; a doubled quote ("") inside a
quoted value stands for one literal quote. Distinct clauses are AND-combined,
the values of one clause are OR-combined. An empty filter matches everything.

Example: status:eq:Active;age:ge:18;name:in:"Doe, John",Smith

Since ":" separates the parts of a clause, a value holding one must be
quoted. This includes every datetime with a time of day:

    created_at:ge:"2024-01-01T10:00:00Z"

Unquoted, such a value splits into extra parts and the clause is rejected
as malformed. Plain dates (2024-01-01) need no quotes.
"""

from enum import Enum
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

from datacore.exceptions.errors import MalformedFilterError
from .fields import FieldTable

CLAUSE_SEPARATOR = ";"
PART_SEPARATOR = ":"
VALUE_SEPARATOR = ","
QUOTE = '"'


class RelationalOperator(str, Enum):
    EQUAL = "eq"
    NOT_EQUAL = "ne"
    GREATER_THAN = "gt"
    GREATER_OR_EQUAL = "ge"
    LESS_THAN = "lt"
    LESS_OR_EQUAL = "le"
    CONTAINS = "contains"
    STARTS_WITH = "startswith"
    ENDS_WITH = "endswith"
    IN = "in"

    @property
    def token(self) -> str:
        return self.value


_OPERATOR_TOKENS = {op.value: op for op in RelationalOperator}


class FilterClause(BaseModel):
    model_config = ConfigDict(frozen=True)

    field_name: str
    operator: RelationalOperator
    values: Tuple[str, ...] = Field(min_length=1)

    def format(self) -> str:
        values = VALUE_SEPARATOR.join(quote_value(value) for value in self.values)
        return f"{self.field_name}{PART_SEPARATOR}{self.operator.token}{PART_SEPARATOR}{values}"


class FilterExpression(BaseModel):
    """Parsed filter: clauses AND-combined; an empty expression matches all entities."""
    model_config = ConfigDict(frozen=True)

    clauses: Tuple[FilterClause, ...] = ()

    @property
    def is_match_all(self) -> bool:
        return not self.clauses

    def format(self) -> str:
        return CLAUSE_SEPARATOR.join(clause.format() for clause in self.clauses)


def quote_value(value: str) -> str:
    """Quote a value when it holds a separator, a quote or surrounding whitespace."""
    special = (CLAUSE_SEPARATOR, PART_SEPARATOR, VALUE_SEPARATOR, QUOTE)
    if value == "" or value != value.strip() or any(char in value for char in special):
        return QUOTE + value.replace(QUOTE, QUOTE * 2) + QUOTE
    return value


def split_top_level(text: str, separator: str, token: str) -> List[str]:
    """Split on separator outside quoted literals; quotes are kept in the parts."""
    parts = []
    current = []
    in_quotes = False
    for char in text:
        if char == QUOTE:
            in_quotes = not in_quotes
        if char == separator and not in_quotes:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    if in_quotes:
        raise MalformedFilterError(token, "unterminated quoted value")
    parts.append("".join(current))
    return parts


def unquote_value(raw: str, token: str) -> str:
    value = raw.strip()
    if value.startswith(QUOTE):
        inner = value[1:-1]
        if len(value) < 2 or not value.endswith(QUOTE) or QUOTE in inner.replace(QUOTE * 2, ""):
            raise MalformedFilterError(token, "badly quoted value")
        return inner.replace(QUOTE * 2, QUOTE)
    if QUOTE in value:
        raise MalformedFilterError(token, "quote inside a bare value")
    if not value:
        raise MalformedFilterError(token, "empty value")
    return value


class FilterParser:
    """Parses filter strings against the fields registered for one entity."""

    def __init__(self, fields: FieldTable):
        self.fields = fields

    def parse(self, raw: Optional[str]) -> FilterExpression:
        if raw is None or not raw.strip():
            return FilterExpression()

        clauses = []
        for clause_text in split_top_level(raw, CLAUSE_SEPARATOR, raw.strip()):
            if clause_text.strip():
                clauses.append(self._parse_clause(clause_text.strip()))
        return FilterExpression(clauses=tuple(clauses))

    def _parse_clause(self, clause: str) -> FilterClause:
        parts = split_top_level(clause, PART_SEPARATOR, clause)
        if len(parts) != 3:
            raise MalformedFilterError(clause, "expected field:operator:values")

        field_name, op_token, values_text = parts
        field_name = field_name.strip()
        if not field_name or QUOTE in field_name:
            raise MalformedFilterError(clause, "missing field name")

        operator = _OPERATOR_TOKENS.get(op_token.strip().lower())
        if operator is None:
            raise MalformedFilterError(clause, f"unknown operator {op_token.strip()!r}")

        spec = self.fields.get(field_name)
        values = tuple(
            unquote_value(value, clause)
            for value in split_top_level(values_text, VALUE_SEPARATOR, clause)
        )
        for value in values:
            try:
                spec.convert(value)
            except ValueError as e:
                raise MalformedFilterError(value, str(e)) from e

        return FilterClause(field_name=spec.name, operator=operator, values=values)
