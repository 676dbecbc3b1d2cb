"""
Result types returned by repositories.
"""

import math
from typing import Generic, List, Optional, TypeVar, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator

from datacore.exceptions.errors import DuplicateError, ValidationError
from datacore.filtering.sorting import Sorting

T = TypeVar("T")


class GetManyAndCountResult(BaseModel, Generic[T]):
    """One page of a filtered, sorted query plus the total match count."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: List[T] = Field(default_factory=list)
    count: int = Field(ge=0)
    page_number: int = Field(default=1, ge=1)
    page_size: int = Field(default=25, ge=1)
    sorting: Sorting

    @model_validator(mode="after")
    def _items_fit_page(self):
        if len(self.items) > self.page_size:
            raise ValueError(f"{len(self.items)} items exceed page size {self.page_size}")
        return self

    @property
    def total_pages(self) -> int:
        return math.ceil(self.count / self.page_size) if self.count else 0

    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages


WriteError = Union[ValidationError, DuplicateError]


class WriteResult(Generic[T]):
    """
    Outcome of try_add / try_save: either the written entity or the expected
    failure (validation or duplicate key) that prevented the write.
    """

    __slots__ = ("entity", "error")

    def __init__(self, entity: Optional[T] = None, error: Optional[WriteError] = None):
        self.entity = entity
        self.error = error

    @classmethod
    def success(cls, entity: T) -> "WriteResult[T]":
        return cls(entity=entity)

    @classmethod
    def failure(cls, error: WriteError) -> "WriteResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the entity or raise the recorded error."""
        if self.error is not None:
            raise self.error
        return self.entity

    def __repr__(self) -> str:
        if self.ok:
            return f"WriteResult(entity={self.entity!r})"
        return f"WriteResult(error={self.error!r})"


__all__ = ["GetManyAndCountResult", "WriteResult", "WriteError"]
