"""
Sort string grammar: comma-separated `field` or `field:asc|desc` tokens.

The first token is the primary key, later ones only break ties.
"""

from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field

from datacore.exceptions.errors import MalformedSortError
from .fields import FieldSpec, FieldTable

CRITERIA_SEPARATOR = ","
DIRECTION_SEPARATOR = ":"


class SortDirection(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


class SortCriterion(BaseModel):
    model_config = ConfigDict(frozen=True)

    field_name: str
    direction: SortDirection = SortDirection.ASCENDING

    def format(self) -> str:
        return f"{self.field_name}{DIRECTION_SEPARATOR}{self.direction.value}"


class Sorting(BaseModel):
    """Ordered, non-empty list of sort criteria."""
    model_config = ConfigDict(frozen=True)

    criteria: Tuple[SortCriterion, ...] = Field(min_length=1)

    @classmethod
    def by(cls, field_name: str, direction: SortDirection = SortDirection.ASCENDING) -> "Sorting":
        return cls(criteria=(SortCriterion(field_name=field_name, direction=direction),))

    @property
    def primary(self) -> SortCriterion:
        return self.criteria[0]

    def includes(self, field_name: str) -> bool:
        return any(c.field_name.lower() == field_name.lower() for c in self.criteria)

    def then_by(self, field_name: str, direction: SortDirection = SortDirection.ASCENDING) -> "Sorting":
        return Sorting(criteria=self.criteria + (SortCriterion(field_name=field_name, direction=direction),))

    def format(self) -> str:
        return CRITERIA_SEPARATOR.join(criterion.format() for criterion in self.criteria)

    def __str__(self) -> str:
        return self.format()


# Resolved sort plan handed to the store: registered field plus direction
SortPlan = List[Tuple[FieldSpec, SortDirection]]


class SortParser:
    """Parses sort strings against the fields registered for one entity."""

    def __init__(self, fields: FieldTable):
        self.fields = fields

    def parse(self, raw: Optional[str], default: Union[Sorting, str, None] = None) -> Sorting:
        if raw is None or not raw.strip():
            return self._default(default)

        criteria = []
        seen = set()
        for token in raw.split(CRITERIA_SEPARATOR):
            criterion = self._parse_token(token.strip(), raw)
            key = criterion.field_name.lower()
            if key in seen:
                raise MalformedSortError(token.strip(), "field sorted twice")
            seen.add(key)
            criteria.append(criterion)
        return Sorting(criteria=tuple(criteria))

    def _default(self, default: Union[Sorting, str, None]) -> Sorting:
        if isinstance(default, Sorting):
            return default
        if default and default.strip():
            return self.parse(default)
        return Sorting.by(self.fields.id_field.name)

    def _parse_token(self, token: str, raw: str) -> SortCriterion:
        if not token:
            raise MalformedSortError(raw, "empty sort token")

        parts = token.split(DIRECTION_SEPARATOR)
        if len(parts) > 2:
            raise MalformedSortError(token, "expected field or field:direction")

        spec = self.fields.get(parts[0])
        direction = SortDirection.ASCENDING
        if len(parts) == 2:
            try:
                direction = SortDirection(parts[1].strip().lower())
            except ValueError:
                raise MalformedSortError(token, "direction must be asc or desc") from None
        return SortCriterion(field_name=spec.name, direction=direction)

    def plan(self, sorting: Sorting) -> SortPlan:
        """Resolve criteria to registered fields for the store."""
        return [(self.fields.get(c.field_name), c.direction) for c in sorting.criteria]


def _null_first_key(spec: FieldSpec):
    def key(entity: Any):
        value = spec.read(entity)
        return (value is not None, value)
    return key


def sort_entities(entities: Sequence[Any], plan: SortPlan) -> List[Any]:
    """
    Stable multi-key sort in memory.

    Sorting by the least significant key first and relying on sort stability
    leaves ties of the primary key ordered by the following keys. None sorts
    first ascending and last descending.
    """
    items = list(entities)
    for spec, direction in reversed(plan):
        items.sort(key=_null_first_key(spec), reverse=direction is SortDirection.DESCENDING)
    return items
