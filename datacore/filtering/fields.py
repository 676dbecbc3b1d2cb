"""
Per-entity registration of filterable and sortable fields.

A FieldTable is declared once per entity (usually next to its repository)
and is the only source the filter and sort parsers consult: a field that is
not registered does not exist as far as the query grammar is concerned.
Attribute names are checked against the model when the table is built, so a
typo fails at import time rather than on the first request.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Type

from datacore.exceptions.errors import UnknownFieldError

_TRUE_VALUES = {"true", "1", "yes", "y", "on"}
_FALSE_VALUES = {"false", "0", "no", "n", "off"}


class FieldKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    TEMPORAL = "temporal"
    ENUM = "enum"
    UUID = "uuid"


class FieldSpec:
    """A registered field: public name, entity attribute, kind and value converter."""

    __slots__ = ("name", "attribute", "kind", "_convert")

    def __init__(self, name: str, kind: FieldKind, convert: Callable[[str], Any], attribute: Optional[str] = None):
        self.name = name
        self.attribute = attribute or name
        self.kind = kind
        self._convert = convert

    def convert(self, raw: str) -> Any:
        """Convert a raw query value to the field's type; raises ValueError."""
        try:
            return self._convert(raw)
        except (TypeError, ValueError, ArithmeticError) as e:
            raise ValueError(f"{raw!r} is not a valid {self.kind.value} value for {self.name!r}") from e

    def read(self, entity: Any) -> Any:
        return getattr(entity, self.attribute, None)

    def column(self, model: Type) -> Any:
        return getattr(model, self.attribute)

    @property
    def is_text(self) -> bool:
        return self.kind is FieldKind.STRING

    def __repr__(self) -> str:
        return f"FieldSpec({self.name!r}, {self.kind.value}, attribute={self.attribute!r})"


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(raw)


def _parse_datetime(raw: str) -> datetime:
    value = raw.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def string_field(name: str, attribute: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.STRING, str, attribute)


def int_field(name: str, attribute: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.NUMBER, lambda raw: int(raw.strip()), attribute)


def float_field(name: str, attribute: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.NUMBER, lambda raw: float(raw.strip()), attribute)


def decimal_field(name: str, attribute: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.NUMBER, lambda raw: Decimal(raw.strip()), attribute)


def bool_field(name: str, attribute: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.BOOLEAN, _parse_bool, attribute)


def datetime_field(name: str, attribute: Optional[str] = None) -> FieldSpec:
    """
    ISO-8601 datetime field; a trailing Z reads as UTC.

    In a filter string the value must be quoted whenever it carries a time of
    day, because ":" is also the clause part separator:
    created_at:lt:"2024-06-01T12:30:00Z".
    """
    return FieldSpec(name, FieldKind.TEMPORAL, _parse_datetime, attribute)


def date_field(name: str, attribute: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.TEMPORAL, lambda raw: date.fromisoformat(raw.strip()), attribute)


def uuid_field(name: str, attribute: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.UUID, lambda raw: uuid.UUID(raw.strip()), attribute)


def enum_field(name: str, enum_type: Type[Enum], attribute: Optional[str] = None) -> FieldSpec:
    """Enum field; values match a member's value first, then its name (case-insensitive)."""
    def _parse(raw: str) -> Enum:
        value = raw.strip()
        for member in enum_type:
            if str(member.value) == value:
                return member
        for member in enum_type:
            if member.name.lower() == value.lower():
                return member
        raise ValueError(raw)
    return FieldSpec(name, FieldKind.ENUM, _parse, attribute)


class FieldTable:
    """
    Registered fields of one entity type.

    Lookups are case-insensitive, the same way the query-string grammar
    accepts `Status` and `status` alike.

    Args:
        model: Entity class the fields belong to
        fields: Registered field specs
        id_field: Name of the identifier field; registered as int if missing
    """

    def __init__(self, model: Type, *fields: FieldSpec, id_field: str = "id"):
        self.model = model
        self._fields: Dict[str, FieldSpec] = {}
        for spec in fields:
            self._register(spec)
        if id_field.lower() not in self._fields:
            self._register(int_field(id_field))
        self.id_field = self._fields[id_field.lower()]

    def _register(self, spec: FieldSpec) -> None:
        key = spec.name.lower()
        if key in self._fields:
            raise ValueError(f"Field {spec.name!r} registered twice for {self.model.__name__}")
        model_fields = getattr(self.model, "model_fields", {})
        if spec.attribute not in model_fields and not hasattr(self.model, spec.attribute):
            raise ValueError(f"{self.model.__name__} has no attribute {spec.attribute!r} (field {spec.name!r})")
        self._fields[key] = spec

    def get(self, name: str) -> FieldSpec:
        """Return the registered field; raises UnknownFieldError when absent."""
        spec = self._fields.get(name.strip().lower())
        if spec is None:
            raise UnknownFieldError(name)
        return spec

    def __contains__(self, name: str) -> bool:
        return name.strip().lower() in self._fields

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    @property
    def names(self) -> List[str]:
        return [spec.name for spec in self._fields.values()]

    def text_fields(self) -> List[FieldSpec]:
        return [spec for spec in self._fields.values() if spec.is_text]
