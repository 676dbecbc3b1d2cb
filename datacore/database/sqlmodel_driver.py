import asyncio
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Callable, List, Optional, Type

from sqlalchemy import func, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select
from sqlmodel.ext.asyncio.session import AsyncSession

from datacore.exceptions.errors import StorageError
from datacore.filtering.predicate import Predicate, as_predicate
from datacore.filtering.sorting import SortDirection, SortPlan, sort_entities
from datacore.logging.logger import get_logger
from .base import BaseDatabaseDriver, BaseSession


def _engine_args(url: str, echo: bool) -> dict:
    engine_args = {"echo": echo}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        engine_args["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            # One shared connection so every session sees the same in-memory database
            engine_args["poolclass"] = StaticPool
    return engine_args


def _select_statement(model: Type, predicate: Predicate, plan: SortPlan, offset: int, limit: Optional[int]):
    statement = select(model).where(predicate.to_clause())
    for spec, direction in plan:
        column = spec.column(model)
        statement = statement.order_by(
            column.desc() if direction is SortDirection.DESCENDING else column.asc()
        )
    if offset:
        statement = statement.offset(offset)
    if limit is not None:
        statement = statement.limit(limit)
    return statement


def _count_statement(model: Type, predicate: Predicate):
    return select(func.count()).select_from(model).where(predicate.to_clause())


def _filter_rows(rows, predicate: Predicate, plan: SortPlan, offset: int, limit: Optional[int]) -> List[Any]:
    rows = sort_entities([row for row in rows if predicate(row)], plan)
    end = None if limit is None else offset + limit
    return rows[offset:end]


def _storage_failure(operation: str, e: SQLAlchemyError) -> StorageError:
    get_logger("store").error(f"Store {operation} failed: {e}")
    return StorageError(e)


class SQLModelDriver(BaseDatabaseDriver):
    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_engine(url, **_engine_args(url, echo))
        self.session_factory = sessionmaker(
            self.engine, class_=Session, expire_on_commit=False
        )

    def connect(self):
        """Check connectivity (the engine manages the connection pool)."""
        with self.engine.begin() as conn:
            conn.execute(text("SELECT 1"))

    def disconnect(self):
        """Dispose the engine and its pool."""
        self.engine.dispose()

    def create_schema(self):
        SQLModel.metadata.create_all(self.engine)

    def drop_schema(self):
        SQLModel.metadata.drop_all(self.engine)

    def open_session(self) -> "SQLModelSession":
        return SQLModelSession(self.session_factory())


class AsyncSQLModelDriver(BaseDatabaseDriver):
    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, future=True, **_engine_args(url, echo))
        self.session_factory = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def connect(self):
        """Connect to database (SQLModel engine manages connections)."""
        async with self.engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

    async def disconnect(self):
        """Disconnect from database."""
        await self.engine.dispose()

    async def create_schema(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def drop_schema(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)

    def open_session(self) -> "AsyncSQLModelSession":
        return AsyncSQLModelSession(self.session_factory())


class SQLModelSession(BaseSession):
    """
    Store session over a SQLModel (SQLAlchemy) Session.

    Predicates built from registered fields are rendered into the WHERE clause;
    any other callable falls back to loading the table and filtering in memory.
    """

    def __init__(self, session: Session):
        self.session = session
        self._active = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def _round_trip(self, operation: str):
        try:
            yield
        except SQLAlchemyError as e:
            raise _storage_failure(operation, e) from e

    def begin(self) -> None:
        with self._round_trip("begin"):
            # Earlier reads and flushes already opened a transaction; it becomes the explicit one
            if not self.session.in_transaction():
                self.session.begin()
            self._active = True

    def commit(self) -> None:
        with self._round_trip("commit"):
            try:
                self.session.commit()
            finally:
                self._active = False

    def rollback(self) -> None:
        with self._round_trip("rollback"):
            try:
                self.session.rollback()
            finally:
                self._active = False

    def in_transaction(self) -> bool:
        return self._active

    def flush(self) -> None:
        with self._round_trip("flush"):
            self.session.flush()

    def close(self) -> None:
        if self._closed:
            return
        with self._round_trip("close"):
            try:
                self.session.close()
            finally:
                self._active = False
                self._closed = True

    def get(self, model: Type, id: Any) -> Optional[Any]:
        with self._round_trip("get"):
            return self.session.get(model, id)

    def query(
        self,
        model: Type,
        predicate: Optional[Callable[[Any], bool]] = None,
        plan: Optional[SortPlan] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Any]:
        predicate = as_predicate(predicate)
        plan = plan or []
        with self._round_trip("query"):
            if not predicate.pushable:
                return _filter_rows(self.session.exec(select(model)).all(), predicate, plan, offset, limit)
            return list(self.session.exec(_select_statement(model, predicate, plan, offset, limit)).all())

    def count(self, model: Type, predicate: Optional[Callable[[Any], bool]] = None) -> int:
        predicate = as_predicate(predicate)
        with self._round_trip("count"):
            if not predicate.pushable:
                return sum(1 for row in self.session.exec(select(model)).all() if predicate(row))
            return self.session.exec(_count_statement(model, predicate)).one()

    def insert(self, entity: Any) -> Any:
        with self._round_trip("insert"):
            self.session.add(entity)
            self.session.flush()
            return entity

    def update(self, entity: Any) -> Any:
        with self._round_trip("update"):
            merged = self.session.merge(entity)
            self.session.flush()
            return merged

    def delete(self, entity: Any) -> None:
        with self._round_trip("delete"):
            target = entity if entity in self.session else self.session.merge(entity)
            self.session.delete(target)
            self.session.flush()


class AsyncSQLModelSession(BaseSession):
    """
    Store session over a SQLModel AsyncSession.

    Every round trip is awaited on the event loop, so cancelling the awaiting
    task abandons it. A write cancelled before its flush completes is dropped
    from the session; one cancelled during the flush leaves the transaction
    for the caller to roll back.
    """

    is_async = True

    def __init__(self, session: AsyncSession):
        self.session = session
        self._active = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def _round_trip(self, operation: str):
        try:
            yield
        except SQLAlchemyError as e:
            raise _storage_failure(operation, e) from e

    async def _flush_or_abandon(self, entity: Any) -> None:
        try:
            await self.session.flush()
        except asyncio.CancelledError:
            if entity in self.session:
                self.session.expunge(entity)
            raise

    def in_transaction(self) -> bool:
        return self._active

    async def begin_async(self) -> None:
        async with self._round_trip("begin"):
            if not self.session.in_transaction():
                await self.session.begin()
            self._active = True

    async def commit_async(self) -> None:
        async with self._round_trip("commit"):
            try:
                await self.session.commit()
            finally:
                self._active = False

    async def rollback_async(self) -> None:
        async with self._round_trip("rollback"):
            try:
                await self.session.rollback()
            finally:
                self._active = False

    async def flush_async(self) -> None:
        async with self._round_trip("flush"):
            await self.session.flush()

    async def close_async(self) -> None:
        if self._closed:
            return
        async with self._round_trip("close"):
            try:
                await self.session.close()
            finally:
                self._active = False
                self._closed = True

    async def get_async(self, model: Type, id: Any) -> Optional[Any]:
        async with self._round_trip("get"):
            return await self.session.get(model, id)

    async def query_async(
        self,
        model: Type,
        predicate: Optional[Callable[[Any], bool]] = None,
        plan: Optional[SortPlan] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Any]:
        predicate = as_predicate(predicate)
        plan = plan or []
        async with self._round_trip("query"):
            if not predicate.pushable:
                rows = (await self.session.exec(select(model))).all()
                return _filter_rows(rows, predicate, plan, offset, limit)
            result = await self.session.exec(_select_statement(model, predicate, plan, offset, limit))
            return list(result.all())

    async def count_async(self, model: Type, predicate: Optional[Callable[[Any], bool]] = None) -> int:
        predicate = as_predicate(predicate)
        async with self._round_trip("count"):
            if not predicate.pushable:
                rows = (await self.session.exec(select(model))).all()
                return sum(1 for row in rows if predicate(row))
            return (await self.session.exec(_count_statement(model, predicate))).one()

    async def insert_async(self, entity: Any) -> Any:
        async with self._round_trip("insert"):
            self.session.add(entity)
            await self._flush_or_abandon(entity)
            return entity

    async def update_async(self, entity: Any) -> Any:
        async with self._round_trip("update"):
            merged = await self.session.merge(entity)
            await self._flush_or_abandon(merged)
            return merged

    async def delete_async(self, entity: Any) -> None:
        async with self._round_trip("delete"):
            target = entity if entity in self.session else await self.session.merge(entity)
            await self.session.delete(target)
            await self._flush_or_abandon(target)


__all__ = ["SQLModelDriver", "SQLModelSession", "AsyncSQLModelDriver", "AsyncSQLModelSession"]
