"""
Error taxonomy of the data-access core.

Grammar, validation and duplicate errors are raised before any store
mutation and map to client rejections. TransactionStateError and
StorageError are server-side failures; only StorageError may be worth
retrying, and the core itself never retries.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class BusinessException(Exception):
    """Base class for business exceptions."""
    def __init__(self, message: str, status_code: int = 400, code: int = 400, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.detail = detail


class DataAccessError(BusinessException):
    """Base class for every error raised by repositories, parsers and units of work."""


class FieldError(BaseModel):
    """A single field-level validation failure."""
    field: str
    message: str


class ValidationError(DataAccessError):
    def __init__(self, field_errors: List[FieldError]):
        self.field_errors = list(field_errors)
        fields = ", ".join(error.field for error in self.field_errors)
        super().__init__(
            f"Validation failed for: {fields}",
            status_code=422,
            code=422,
            detail=[error.model_dump() for error in self.field_errors],
        )


class DuplicateError(DataAccessError):
    def __init__(self, key: Dict[str, Any]):
        self.key = dict(key)
        super().__init__(
            f"An entity with {self.key} already exists",
            status_code=409,
            code=409,
            detail={"key": {name: str(value) for name, value in self.key.items()}},
        )


class NotFoundError(DataAccessError):
    def __init__(self, id: Any):
        self.id = id
        super().__init__(f"Entity {id!r} not found", status_code=404, code=404, detail={"id": str(id)})


class MalformedFilterError(DataAccessError):
    _kind = "filter"

    def __init__(self, token: str, reason: Optional[str] = None):
        self.token = token
        self.reason = reason
        message = f"Malformed {self._kind} near {token!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, status_code=400, code=400, detail={"token": token})


class MalformedSortError(MalformedFilterError):
    _kind = "sort"


class UnknownFieldError(DataAccessError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Unknown field {field!r}", status_code=400, code=400, detail={"field": field})


class UnsupportedOperatorError(DataAccessError):
    def __init__(self, field: str, operator: Any):
        self.field = field
        self.operator = operator
        op_name = getattr(operator, "token", str(operator))
        super().__init__(
            f"Operator {op_name!r} is not supported for field {field!r}",
            status_code=400,
            code=400,
            detail={"field": field, "operator": op_name},
        )


class TransactionStateError(DataAccessError):
    """Misuse of the unit-of-work state machine; a programming error, never retryable."""
    def __init__(self, attempted_op: str, reason: Optional[str] = None):
        self.attempted_op = attempted_op
        message = f"Cannot {attempted_op}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, status_code=500, code=500, detail={"attempted_op": attempted_op})


class StorageError(DataAccessError):
    """Opaque wrapper around a backing-store failure."""
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Storage failure: {cause}", status_code=500, code=500)


__all__ = [
    "BusinessException",
    "DataAccessError",
    "FieldError",
    "ValidationError",
    "DuplicateError",
    "NotFoundError",
    "MalformedFilterError",
    "MalformedSortError",
    "UnknownFieldError",
    "UnsupportedOperatorError",
    "TransactionStateError",
    "StorageError",
]
