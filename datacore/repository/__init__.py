"""
Repository pattern: data access abstraction, decouples service layer from the store session.
"""

from .base import ReadOnlyRepository, Repository
from .results import GetManyAndCountResult, WriteResult
from .unit_of_work import UnitOfWork, UnitOfWorkState
from .validation import EntityValidator, PydanticValidator, RuleValidator

__all__ = [
    "ReadOnlyRepository",
    "Repository",
    "GetManyAndCountResult",
    "WriteResult",
    "UnitOfWork",
    "UnitOfWorkState",
    "EntityValidator",
    "PydanticValidator",
    "RuleValidator",
]
