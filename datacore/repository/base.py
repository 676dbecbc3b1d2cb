"""
Read-only and write-capable generic repositories.
"""

import weakref
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from datacore.config import settings
from datacore.database.base import BaseSession
from datacore.exceptions.errors import (
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStateError,
    ValidationError,
)
from datacore.filtering.fields import FieldTable
from datacore.filtering.grammar import FilterParser, RelationalOperator
from datacore.filtering.predicate import AllOf, Comparison, Predicate, PredicateBuilder
from datacore.filtering.query import QueryRequest
from datacore.filtering.sorting import SortDirection, SortParser, SortPlan, Sorting
from datacore.logging.logger import get_logger
from .results import GetManyAndCountResult, WriteResult
from .validation import EntityValidator, PydanticValidator

T = TypeVar("T")

EntityPredicate = Callable[[Any], bool]


class _PreparedQuery:
    __slots__ = ("predicate", "sorting", "plan", "page", "page_size")

    def __init__(self, predicate: Predicate, sorting: Sorting, plan: SortPlan, page: int, page_size: int):
        self.predicate = predicate
        self.sorting = sorting
        self.plan = plan
        self.page = page
        self.page_size = page_size

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def clamp_page(page: Optional[int], page_size: Optional[int]) -> Tuple[int, int]:
    """Forgiving pagination: page below 1 becomes 1, page size falls back to the configured default."""
    page = page if page and page >= 1 else 1
    if not page_size or page_size < 1:
        page_size = settings.DEFAULT_PAGE_SIZE
    return page, min(page_size, settings.MAX_PAGE_SIZE)


class ReadOnlyRepository(Generic[T]):
    """
    Generic read-only repository bound to one store session.

    The session is held weakly: the unit of work owns it and a repository
    must never outlive its unit of work.

    Args:
        session: Store session shared with the owning unit of work
        model: Entity class
        fields: Registered filterable/sortable fields (defaults to the class attribute)
    """

    fields: Optional[FieldTable] = None
    default_sort: Optional[str] = None

    def __init__(self, session: BaseSession, model: Type[T], fields: Optional[FieldTable] = None):
        self._session_ref = weakref.ref(session)
        self.model = model
        if fields is None:
            fields = type(self).fields
        if fields is None:
            raise ValueError(f"No field table registered for {model.__name__}")
        self.fields = fields
        self.filter_parser = FilterParser(fields)
        self.sort_parser = SortParser(fields)
        self.predicate_builder = PredicateBuilder(fields)

    @property
    def session(self) -> BaseSession:
        session = self._session_ref()
        if session is None or session.closed:
            raise TransactionStateError(f"use {type(self).__name__}", "its unit of work has been disposed")
        return session

    def entity_id(self, entity: T) -> Any:
        return self.fields.id_field.read(entity)

    # --- Query preparation ---

    def _prepare(
        self,
        filter_raw: Optional[str],
        default_sort: Optional[str],
        page: Optional[int],
        page_size: Optional[int],
        sort: Optional[str],
        search: Optional[str],
        search_fields: Optional[Sequence[str]],
    ) -> _PreparedQuery:
        expression = self.filter_parser.parse(filter_raw)
        sorting = self.sort_parser.parse(sort, default_sort if default_sort is not None else self.default_sort)
        predicate = self.predicate_builder.build(expression)
        if search and search.strip():
            predicate = predicate & self.predicate_builder.search(search, search_fields)
        page, page_size = clamp_page(page, page_size)

        get_logger("repository").debug(
            f"{self.model.__name__}: filter={expression.format()!r} sort={sorting.format()!r} "
            f"page={page} page_size={page_size}"
        )
        return _PreparedQuery(predicate, sorting, self._plan(sorting), page, page_size)

    def _plan(self, sorting: Sorting) -> SortPlan:
        """Sort plan with the identifier appended as the final tie-breaker."""
        plan = self.sort_parser.plan(sorting)
        if not sorting.includes(self.fields.id_field.name):
            plan.append((self.fields.id_field, SortDirection.ASCENDING))
        return plan

    def _default_plan(self) -> SortPlan:
        return self._plan(self.sort_parser.parse(None, self.default_sort))

    # --- Synchronous reads ---

    def get(self, id: Any) -> Optional[T]:
        """Get entity by ID; None when absent."""
        return self.session.get(self.model, id)

    def get_all(self) -> List[T]:
        return self.session.query(self.model, None, self._default_plan())

    def find(self, predicate: EntityPredicate) -> List[T]:
        """Entities matching a predicate (built Predicate or any callable)."""
        return self.session.query(self.model, predicate, self._default_plan())

    def count(self, predicate: Optional[EntityPredicate] = None) -> int:
        return self.session.count(self.model, predicate)

    def equals(self, **filters) -> Predicate:
        """Equality predicate over registered fields (e.g. username='admin')."""
        return AllOf(
            Comparison(self.fields.get(name), self.model, RelationalOperator.EQUAL, value)
            for name, value in filters.items()
        )

    def find_one(self, **filters) -> Optional[T]:
        """Find one entity by filters (e.g. username='admin')."""
        rows = self.session.query(self.model, self.equals(**filters), self._default_plan(), 0, 1)
        return rows[0] if rows else None

    def find_all(self, **filters) -> List[T]:
        """Find entities by filters."""
        return self.session.query(self.model, self.equals(**filters), self._default_plan())

    def get_many_and_count(
        self,
        filter_raw: Optional[str] = None,
        default_sort: Optional[str] = None,
        page: Optional[int] = 1,
        page_size: Optional[int] = None,
        sort: Optional[str] = None,
        search: Optional[str] = None,
        search_fields: Optional[Sequence[str]] = None,
    ) -> GetManyAndCountResult[T]:
        """
        Filter, sort and paginate; count ignores pagination.

        Args:
            filter_raw: Filter string (None/empty matches all)
            default_sort: Sort string used when `sort` is empty
            page: 1-based page number (values below 1 become 1)
            page_size: Items per page (None or below 1 uses the configured default)
            sort: Caller-supplied sort string
            search: Quick-search term matched against text fields
            search_fields: Restrict quick search to these fields

        Returns:
            GetManyAndCountResult with the page items and total count
        """
        prepared = self._prepare(filter_raw, default_sort, page, page_size, sort, search, search_fields)
        session = self.session
        total = session.count(self.model, prepared.predicate)
        items = session.query(self.model, prepared.predicate, prepared.plan, prepared.offset, prepared.page_size)
        return GetManyAndCountResult(
            items=items,
            count=total,
            page_number=prepared.page,
            page_size=prepared.page_size,
            sorting=prepared.sorting,
        )

    def get_many_and_count_from_query(self, query_string: Optional[str], default_sort: Optional[str] = None) -> GetManyAndCountResult[T]:
        request = QueryRequest.from_query_string(query_string)
        return self.get_many_and_count(
            request.filter,
            default_sort,
            request.page_number,
            request.page_size,
            sort=request.sort,
            search=request.query,
            search_fields=request.query_fields,
        )

    # --- Asynchronous reads ---

    async def get_async(self, id: Any) -> Optional[T]:
        return await self.session.get_async(self.model, id)

    async def get_all_async(self) -> List[T]:
        return await self.session.query_async(self.model, None, self._default_plan())

    async def find_async(self, predicate: EntityPredicate) -> List[T]:
        return await self.session.query_async(self.model, predicate, self._default_plan())

    async def count_async(self, predicate: Optional[EntityPredicate] = None) -> int:
        return await self.session.count_async(self.model, predicate)

    async def find_one_async(self, **filters) -> Optional[T]:
        rows = await self.session.query_async(self.model, self.equals(**filters), self._default_plan(), 0, 1)
        return rows[0] if rows else None

    async def find_all_async(self, **filters) -> List[T]:
        return await self.session.query_async(self.model, self.equals(**filters), self._default_plan())

    async def get_many_and_count_async(
        self,
        filter_raw: Optional[str] = None,
        default_sort: Optional[str] = None,
        page: Optional[int] = 1,
        page_size: Optional[int] = None,
        sort: Optional[str] = None,
        search: Optional[str] = None,
        search_fields: Optional[Sequence[str]] = None,
    ) -> GetManyAndCountResult[T]:
        prepared = self._prepare(filter_raw, default_sort, page, page_size, sort, search, search_fields)
        session = self.session
        # Sequential round trips on the shared session
        total = await session.count_async(self.model, prepared.predicate)
        items = await session.query_async(self.model, prepared.predicate, prepared.plan, prepared.offset, prepared.page_size)
        return GetManyAndCountResult(
            items=items,
            count=total,
            page_number=prepared.page,
            page_size=prepared.page_size,
            sorting=prepared.sorting,
        )


class Repository(ReadOnlyRepository[T]):
    """
    Write-capable repository: every mutation is validated first and nothing
    touches the store when validation (or, for add, the duplicate lookup) fails.

    Writes issued outside an active transaction are committed immediately.

    Args:
        session: Store session shared with the owning unit of work
        model: Entity class
        fields: Registered fields (defaults to the class attribute)
        validator: Entity validator (defaults to the class attribute, then PydanticValidator)
        unique_key: Registered field names forming the natural key checked by add()
    """

    validator: Optional[EntityValidator] = None
    unique_key: Tuple[str, ...] = ()

    def __init__(
        self,
        session: BaseSession,
        model: Type[T],
        fields: Optional[FieldTable] = None,
        validator: Optional[EntityValidator] = None,
        unique_key: Optional[Sequence[str]] = None,
    ):
        super().__init__(session, model, fields)
        if validator is None:
            validator = type(self).validator or PydanticValidator(model)
        self.validator = validator
        self.unique_key = tuple(unique_key if unique_key is not None else type(self).unique_key)
        for name in self.unique_key:
            self.fields.get(name)

    # --- Checks (no store access) ---

    def _validate(self, entity: T) -> Optional[ValidationError]:
        errors = self.validator.validate(entity)
        if not errors:
            return None
        get_logger("repository").warning(
            f"{self.model.__name__} validation failed: {[error.model_dump() for error in errors]}"
        )
        return ValidationError(errors)

    def _unique_lookup(self, entity: T) -> Optional[Tuple[Dict[str, Any], Predicate]]:
        if not self.unique_key:
            return None
        key = {}
        for name in self.unique_key:
            spec = self.fields.get(name)
            value = spec.read(entity)
            if value is None:
                return None
            key[spec.name] = value
        return key, self.equals(**key)

    def _duplicate(self, key: Dict[str, Any]) -> DuplicateError:
        get_logger("repository").warning(f"{self.model.__name__} duplicate key: {key}")
        return DuplicateError(key)

    # --- Synchronous writes ---

    def _find_duplicate(self, entity: T) -> Optional[DuplicateError]:
        session = self.session
        id = self.entity_id(entity)
        if id is not None and session.get(self.model, id) is not None:
            return self._duplicate({self.fields.id_field.name: id})
        lookup = self._unique_lookup(entity)
        if lookup is not None and session.count(self.model, lookup[1]) > 0:
            return self._duplicate(lookup[0])
        return None

    def _write(self, operation: Callable[[Any], Any], entity: T) -> Any:
        session = self.session
        autocommit = not session.in_transaction()
        try:
            result = operation(entity)
            if autocommit:
                session.commit()
        except StorageError:
            if autocommit:
                session.rollback()
            raise
        return result

    def try_add(self, entity: T) -> WriteResult[T]:
        error = self._validate(entity) or self._find_duplicate(entity)
        if error is not None:
            return WriteResult.failure(error)
        return WriteResult.success(self._write(self.session.insert, entity))

    def add(self, entity: T) -> T:
        """Validate, check the unique key, then insert; raises ValidationError / DuplicateError."""
        return self.try_add(entity).unwrap()

    def try_save(self, entity: T) -> WriteResult[T]:
        error = self._validate(entity)
        if error is not None:
            return WriteResult.failure(error)
        session = self.session
        id = self.entity_id(entity)
        exists = id is not None and session.get(self.model, id) is not None
        return WriteResult.success(self._write(session.update if exists else session.insert, entity))

    def save(self, entity: T) -> T:
        """Upsert: insert when the id is unseen, update otherwise."""
        return self.try_save(entity).unwrap()

    def delete(self, entity: T) -> None:
        id = self.entity_id(entity)
        if id is None or self.session.get(self.model, id) is None:
            raise NotFoundError(id)
        self._write(self.session.delete, entity)

    # --- Asynchronous writes ---

    async def _find_duplicate_async(self, entity: T) -> Optional[DuplicateError]:
        session = self.session
        id = self.entity_id(entity)
        if id is not None and await session.get_async(self.model, id) is not None:
            return self._duplicate({self.fields.id_field.name: id})
        lookup = self._unique_lookup(entity)
        if lookup is not None and await session.count_async(self.model, lookup[1]) > 0:
            return self._duplicate(lookup[0])
        return None

    async def _write_async(self, operation, entity: T) -> Any:
        session = self.session
        autocommit = not session.in_transaction()
        try:
            result = await operation(entity)
            if autocommit:
                await session.commit_async()
        except StorageError:
            if autocommit:
                await session.rollback_async()
            raise
        return result

    async def try_add_async(self, entity: T) -> WriteResult[T]:
        error = self._validate(entity) or await self._find_duplicate_async(entity)
        if error is not None:
            return WriteResult.failure(error)
        return WriteResult.success(await self._write_async(self.session.insert_async, entity))

    async def add_async(self, entity: T) -> T:
        return (await self.try_add_async(entity)).unwrap()

    async def try_save_async(self, entity: T) -> WriteResult[T]:
        error = self._validate(entity)
        if error is not None:
            return WriteResult.failure(error)
        session = self.session
        id = self.entity_id(entity)
        exists = id is not None and await session.get_async(self.model, id) is not None
        return WriteResult.success(
            await self._write_async(session.update_async if exists else session.insert_async, entity)
        )

    async def save_async(self, entity: T) -> T:
        return (await self.try_save_async(entity)).unwrap()

    async def delete_async(self, entity: T) -> None:
        id = self.entity_id(entity)
        if id is None or await self.session.get_async(self.model, id) is None:
            raise NotFoundError(id)
        await self._write_async(self.session.delete_async, entity)
