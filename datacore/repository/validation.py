"""
Entity validators consumed by write-capable repositories.

Contract: validate(entity) -> list of FieldError; an empty list means valid.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, List, Tuple, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from datacore.exceptions.errors import FieldError

T = TypeVar("T")


class EntityValidator(ABC, Generic[T]):
    @abstractmethod
    def validate(self, entity: T) -> List[FieldError]:
        pass


class RuleValidator(EntityValidator[T]):
    """
    Declarative per-field rules, evaluated in declaration order.

    Subclasses register rules in __init__:

        class UserValidator(RuleValidator[User]):
            def __init__(self):
                super().__init__()
                self.rule("username", lambda v: bool(v and v.strip()), "Username is required")
    """

    def __init__(self):
        self._rules: List[Tuple[str, Callable[[Any], bool], str]] = []

    def rule(self, field: str, check: Callable[[Any], bool], message: str) -> "RuleValidator[T]":
        self._rules.append((field, check, message))
        return self

    def validate(self, entity: T) -> List[FieldError]:
        errors = []
        for field, check, message in self._rules:
            if not check(getattr(entity, field, None)):
                errors.append(FieldError(field=field, message=message))
        return errors


class PydanticValidator(EntityValidator[T]):
    """Re-validates an entity against its own pydantic/SQLModel field constraints."""

    def __init__(self, model: Type[T]):
        self.model = model

    def validate(self, entity: T) -> List[FieldError]:
        try:
            self.model.model_validate(entity.model_dump())
        except PydanticValidationError as e:
            return [
                FieldError(field=".".join(str(part) for part in error["loc"]) or "__root__", message=error["msg"])
                for error in e.errors()
            ]
        return []
