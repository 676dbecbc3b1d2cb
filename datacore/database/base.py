"""
Backing-store contract consumed by repositories and units of work.

The core only relies on this capability set: query-by-predicate, insert,
update, delete and transaction begin/commit/rollback on one session handle.

A session is either synchronous or asynchronous. A synchronous session
implements the plain methods, an asynchronous one the `*_async` forms;
calling the other family raises TransactionStateError.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Type

from datacore.exceptions.errors import TransactionStateError
from datacore.filtering.sorting import SortPlan

EntityPredicate = Callable[[Any], bool]


class BaseDatabaseDriver(ABC):
    @abstractmethod
    def connect(self):
        pass

    @abstractmethod
    def disconnect(self):
        pass

    @abstractmethod
    def open_session(self) -> "BaseSession":
        pass


class BaseSession(ABC):
    """One store session. Not thread-safe: a session belongs to a single unit of work."""

    is_async: bool = False

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass

    @abstractmethod
    def in_transaction(self) -> bool:
        """True while an explicitly begun transaction is open."""

    def _unavailable(self, operation: str):
        kind = "asynchronous" if self.is_async else "synchronous"
        other = "synchronous" if self.is_async else "asynchronous"
        raise TransactionStateError(operation, f"{other} form called on a {kind} session")

    # --- Synchronous forms ---

    def begin(self) -> None:
        self._unavailable("begin")

    def commit(self) -> None:
        self._unavailable("commit")

    def rollback(self) -> None:
        self._unavailable("rollback")

    def flush(self) -> None:
        self._unavailable("flush")

    def close(self) -> None:
        self._unavailable("close")

    def get(self, model: Type, id: Any) -> Optional[Any]:
        self._unavailable("get")

    def query(
        self,
        model: Type,
        predicate: Optional[EntityPredicate] = None,
        plan: Optional[SortPlan] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Any]:
        self._unavailable("query")

    def count(self, model: Type, predicate: Optional[EntityPredicate] = None) -> int:
        self._unavailable("count")

    def insert(self, entity: Any) -> Any:
        self._unavailable("insert")

    def update(self, entity: Any) -> Any:
        self._unavailable("update")

    def delete(self, entity: Any) -> None:
        self._unavailable("delete")

    # --- Asynchronous forms ---

    async def begin_async(self) -> None:
        self._unavailable("begin_async")

    async def commit_async(self) -> None:
        self._unavailable("commit_async")

    async def rollback_async(self) -> None:
        self._unavailable("rollback_async")

    async def flush_async(self) -> None:
        self._unavailable("flush_async")

    async def close_async(self) -> None:
        self._unavailable("close_async")

    async def get_async(self, model: Type, id: Any) -> Optional[Any]:
        self._unavailable("get_async")

    async def query_async(
        self,
        model: Type,
        predicate: Optional[EntityPredicate] = None,
        plan: Optional[SortPlan] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Any]:
        self._unavailable("query_async")

    async def count_async(self, model: Type, predicate: Optional[EntityPredicate] = None) -> int:
        self._unavailable("count_async")

    async def insert_async(self, entity: Any) -> Any:
        self._unavailable("insert_async")

    async def update_async(self, entity: Any) -> Any:
        self._unavailable("update_async")

    async def delete_async(self, entity: Any) -> None:
        self._unavailable("delete_async")
