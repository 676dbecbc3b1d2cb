"""
Predicate model built from parsed filter expressions.

A Predicate is a pure callable over an entity. Predicates built from
registered fields can also render themselves as a SQLAlchemy boolean clause,
which lets the store push the filter down into SQL instead of materializing
the table and filtering in memory.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional, Sequence, Tuple

from sqlalchemy import and_, false, not_, or_, true

from datacore.exceptions.errors import UnsupportedOperatorError
from .fields import FieldKind, FieldSpec, FieldTable
from .grammar import FilterClause, FilterExpression, RelationalOperator

_TEXT_OPERATORS = frozenset({
    RelationalOperator.CONTAINS,
    RelationalOperator.STARTS_WITH,
    RelationalOperator.ENDS_WITH,
})
_EQUALITY_OPERATORS = frozenset({
    RelationalOperator.EQUAL,
    RelationalOperator.NOT_EQUAL,
    RelationalOperator.IN,
})
_ORDERING_OPERATORS = frozenset(RelationalOperator) - _TEXT_OPERATORS - _EQUALITY_OPERATORS

SUPPORTED_OPERATORS = {
    FieldKind.STRING: frozenset(RelationalOperator),
    FieldKind.NUMBER: _EQUALITY_OPERATORS | _ORDERING_OPERATORS,
    FieldKind.TEMPORAL: _EQUALITY_OPERATORS | _ORDERING_OPERATORS,
    FieldKind.BOOLEAN: _EQUALITY_OPERATORS,
    FieldKind.ENUM: _EQUALITY_OPERATORS,
    FieldKind.UUID: _EQUALITY_OPERATORS,
}


class Predicate(ABC):
    """Composable boolean function over entities (`&`, `|`, `~`)."""

    @abstractmethod
    def __call__(self, entity: Any) -> bool:
        ...

    @property
    def pushable(self) -> bool:
        """True when to_clause() can render this predicate for the store."""
        return True

    @abstractmethod
    def to_clause(self):
        """Render as a SQLAlchemy boolean clause."""

    def __and__(self, other: Callable[[Any], bool]) -> "Predicate":
        return AllOf((self, as_predicate(other)))

    def __or__(self, other: Callable[[Any], bool]) -> "Predicate":
        return AnyOf((self, as_predicate(other)))

    def __invert__(self) -> "Predicate":
        return Not(self)


class MatchAll(Predicate):
    def __call__(self, entity: Any) -> bool:
        return True

    def to_clause(self):
        return true()

    def __repr__(self) -> str:
        return "MatchAll()"


class Comparison(Predicate):
    """One field compared against one value (or a value set for IN)."""

    def __init__(self, spec: FieldSpec, model: type, operator: RelationalOperator, value: Any):
        self.spec = spec
        self.model = model
        self.operator = operator
        self.value = value

    def __call__(self, entity: Any) -> bool:
        actual = self.spec.read(entity)
        if actual is None:
            return False
        op = self.operator
        if op is RelationalOperator.EQUAL:
            return actual == self.value
        if op is RelationalOperator.NOT_EQUAL:
            return actual != self.value
        if op is RelationalOperator.IN:
            return actual in self.value
        if op is RelationalOperator.GREATER_THAN:
            return actual > self.value
        if op is RelationalOperator.GREATER_OR_EQUAL:
            return actual >= self.value
        if op is RelationalOperator.LESS_THAN:
            return actual < self.value
        if op is RelationalOperator.LESS_OR_EQUAL:
            return actual <= self.value
        text, needle = str(actual).lower(), str(self.value).lower()
        if op is RelationalOperator.CONTAINS:
            return needle in text
        if op is RelationalOperator.STARTS_WITH:
            return text.startswith(needle)
        return text.endswith(needle)

    def to_clause(self):
        column = self.spec.column(self.model)
        op = self.operator
        if op is RelationalOperator.EQUAL:
            return column == self.value
        if op is RelationalOperator.NOT_EQUAL:
            return column != self.value
        if op is RelationalOperator.IN:
            return column.in_(list(self.value))
        if op is RelationalOperator.GREATER_THAN:
            return column > self.value
        if op is RelationalOperator.GREATER_OR_EQUAL:
            return column >= self.value
        if op is RelationalOperator.LESS_THAN:
            return column < self.value
        if op is RelationalOperator.LESS_OR_EQUAL:
            return column <= self.value
        if op is RelationalOperator.CONTAINS:
            return column.icontains(self.value, autoescape=True)
        if op is RelationalOperator.STARTS_WITH:
            return column.istartswith(self.value, autoescape=True)
        return column.iendswith(self.value, autoescape=True)

    def __repr__(self) -> str:
        return f"Comparison({self.spec.name!r}, {self.operator.token}, {self.value!r})"


class AllOf(Predicate):
    def __init__(self, children: Iterable[Predicate]):
        self.children: Tuple[Predicate, ...] = tuple(children)

    def __call__(self, entity: Any) -> bool:
        return all(child(entity) for child in self.children)

    @property
    def pushable(self) -> bool:
        return all(child.pushable for child in self.children)

    def to_clause(self):
        if not self.children:
            return true()
        return and_(*(child.to_clause() for child in self.children))

    def __repr__(self) -> str:
        return f"AllOf({list(self.children)!r})"


class AnyOf(Predicate):
    def __init__(self, children: Iterable[Predicate]):
        self.children: Tuple[Predicate, ...] = tuple(children)

    def __call__(self, entity: Any) -> bool:
        return any(child(entity) for child in self.children)

    @property
    def pushable(self) -> bool:
        return all(child.pushable for child in self.children)

    def to_clause(self):
        if not self.children:
            return false()
        return or_(*(child.to_clause() for child in self.children))

    def __repr__(self) -> str:
        return f"AnyOf({list(self.children)!r})"


class Not(Predicate):
    def __init__(self, child: Predicate):
        self.child = child

    def __call__(self, entity: Any) -> bool:
        return not self.child(entity)

    @property
    def pushable(self) -> bool:
        return self.child.pushable

    def to_clause(self):
        return not_(self.child.to_clause())


class CallablePredicate(Predicate):
    """Wraps an arbitrary callable; evaluated in memory only."""

    def __init__(self, func: Callable[[Any], bool]):
        self.func = func

    def __call__(self, entity: Any) -> bool:
        return bool(self.func(entity))

    @property
    def pushable(self) -> bool:
        return False

    def to_clause(self):
        raise NotImplementedError("Callable predicates cannot be rendered for the store")


def as_predicate(func: Optional[Callable[[Any], bool]]) -> Predicate:
    if func is None:
        return MatchAll()
    if isinstance(func, Predicate):
        return func
    return CallablePredicate(func)


class PredicateBuilder:
    """Builds predicates for one entity from parsed filter expressions."""

    def __init__(self, fields: FieldTable):
        self.fields = fields

    def build(self, expression: FilterExpression) -> Predicate:
        if expression.is_match_all:
            return MatchAll()
        predicates = [self._build_clause(clause) for clause in expression.clauses]
        if len(predicates) == 1:
            return predicates[0]
        return AllOf(predicates)

    def _build_clause(self, clause: FilterClause) -> Predicate:
        spec = self.fields.get(clause.field_name)
        if clause.operator not in SUPPORTED_OPERATORS[spec.kind]:
            raise UnsupportedOperatorError(spec.name, clause.operator)

        values = [spec.convert(value) for value in clause.values]
        if clause.operator is RelationalOperator.IN:
            return Comparison(spec, self.fields.model, clause.operator, tuple(values))

        comparisons = [Comparison(spec, self.fields.model, clause.operator, value) for value in values]
        if len(comparisons) == 1:
            return comparisons[0]
        return AnyOf(comparisons)

    def search(self, term: Optional[str], field_names: Optional[Sequence[str]] = None) -> Predicate:
        """Quick search: case-insensitive `contains` over text fields, OR-combined."""
        if term is None or not term.strip():
            return MatchAll()

        if field_names:
            specs = [self.fields.get(name) for name in field_names]
            for spec in specs:
                if not spec.is_text:
                    raise UnsupportedOperatorError(spec.name, RelationalOperator.CONTAINS)
        else:
            specs = self.fields.text_fields()

        needle = term.strip()
        return AnyOf(
            Comparison(spec, self.fields.model, RelationalOperator.CONTAINS, needle)
            for spec in specs
        )
