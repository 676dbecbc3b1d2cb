"""
Unit of Work: owns one store session and its transaction for one logical operation.

    Created -> Active -> {Committed | RolledBack} -> Disposed

A unit of work is created per business operation (e.g. per inbound request),
never shared or reused, and is not thread-safe. Used as a context manager it
is disposed on every exit path; committing is always explicit, so leaving the
block with an active transaction rolls it back.
"""

import uuid
from enum import Enum
from typing import Dict, Optional, Type, TypeVar

from datacore.database.base import BaseSession
from datacore.exceptions.errors import StorageError, TransactionStateError
from datacore.logging.logger import bind_trace_id, get_logger, reset_trace_id

R = TypeVar("R")


class UnitOfWorkState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    DISPOSED = "disposed"


class UnitOfWork:
    """Manages related repositories with a shared session and transaction commit/rollback."""

    def __init__(self, session: Optional[BaseSession] = None, trace_id: Optional[str] = None):
        """Initialize UnitOfWork; session must be provided (e.g. UnitOfWork.from_session())."""
        if session is None:
            raise ValueError("Session must be provided. Use UnitOfWork.from_session() or pass session explicitly.")

        self.session = session
        self.state = UnitOfWorkState.CREATED
        self.trace_id = trace_id or uuid.uuid4().hex[:12]
        self._repositories: Dict[type, object] = {}
        self._transaction_begun = False
        self._trace_token = None

    @classmethod
    def from_session(cls, session: BaseSession) -> "UnitOfWork":
        """Create UnitOfWork from an existing session."""
        return cls(session=session)

    @property
    def _log(self):
        return get_logger("unit_of_work", trace_id=self.trace_id)

    def get_repository(self, repo_class: Type[R]) -> R:
        """Get or create a repository instance (built on first access, cached for this unit of work)."""
        self._ensure_open("get repository")
        if repo_class not in self._repositories:
            self._repositories[repo_class] = repo_class(self.session)
        return self._repositories[repo_class]

    def is_active_transaction(self) -> bool:
        return self.state is UnitOfWorkState.ACTIVE

    @property
    def disposed(self) -> bool:
        return self.state is UnitOfWorkState.DISPOSED

    # --- State checks ---

    def _ensure_open(self, operation: str) -> None:
        if self.state is UnitOfWorkState.DISPOSED:
            raise TransactionStateError(operation, "unit of work is disposed")

    def _check_begin(self) -> None:
        self._ensure_open("begin transaction")
        if self.state is UnitOfWorkState.ACTIVE:
            raise TransactionStateError("begin transaction", "a transaction is already active")

    def _check_commit(self) -> None:
        self._ensure_open("commit")
        if self.state is not UnitOfWorkState.ACTIVE:
            raise TransactionStateError("commit", f"no active transaction (state: {self.state.value})")

    def _check_rollback(self) -> bool:
        """True when there is an active transaction to roll back."""
        self._ensure_open("rollback")
        if not self._transaction_begun:
            raise TransactionStateError("rollback", "no transaction was begun")
        if self.state is not UnitOfWorkState.ACTIVE:
            self._log.debug(f"Rollback ignored, transaction already {self.state.value}")
            return False
        return True

    def _mark_active(self) -> None:
        self.state = UnitOfWorkState.ACTIVE
        self._transaction_begun = True
        self._log.debug("Transaction begun")

    # --- Synchronous API ---

    def begin_transaction(self) -> None:
        self._check_begin()
        self.session.begin()
        self._mark_active()

    def commit(self) -> None:
        """Commit all changes."""
        self._check_commit()
        try:
            self.session.commit()
        except StorageError:
            self.state = UnitOfWorkState.ROLLED_BACK
            self.session.rollback()
            raise
        self.state = UnitOfWorkState.COMMITTED
        self._log.debug("Transaction committed")

    def rollback(self) -> None:
        """Rollback all changes."""
        if self._check_rollback():
            self.state = UnitOfWorkState.ROLLED_BACK
            self.session.rollback()
            self._log.debug("Transaction rolled back")

    def reset_transaction(self) -> None:
        """Begin a fresh transaction on the same session; an in-flight one is rolled back first."""
        self._ensure_open("reset transaction")
        if self.state is UnitOfWorkState.ACTIVE:
            self.state = UnitOfWorkState.ROLLED_BACK
            self.session.rollback()
        self.session.begin()
        self._mark_active()

    def flush(self) -> None:
        """Flush session (e.g. to get auto-increment IDs)."""
        self._ensure_open("flush")
        self.session.flush()

    def dispose(self) -> None:
        """Release the active transaction (if any), then the session. Idempotent."""
        if self.state is UnitOfWorkState.DISPOSED:
            return
        was_active = self.state is UnitOfWorkState.ACTIVE
        self.state = UnitOfWorkState.DISPOSED
        self._repositories.clear()
        try:
            if was_active:
                self._log.info("Disposing with an active transaction, rolling back")
                self.session.rollback()
        finally:
            self.session.close()
            self._log.debug("Unit of work disposed")

    # --- Asynchronous API ---

    async def begin_transaction_async(self) -> None:
        self._check_begin()
        await self.session.begin_async()
        self._mark_active()

    async def commit_async(self) -> None:
        self._check_commit()
        try:
            await self.session.commit_async()
        except StorageError:
            self.state = UnitOfWorkState.ROLLED_BACK
            await self.session.rollback_async()
            raise
        self.state = UnitOfWorkState.COMMITTED
        self._log.debug("Transaction committed")

    async def rollback_async(self) -> None:
        if self._check_rollback():
            self.state = UnitOfWorkState.ROLLED_BACK
            await self.session.rollback_async()
            self._log.debug("Transaction rolled back")

    async def reset_transaction_async(self) -> None:
        self._ensure_open("reset transaction")
        if self.state is UnitOfWorkState.ACTIVE:
            self.state = UnitOfWorkState.ROLLED_BACK
            await self.session.rollback_async()
        await self.session.begin_async()
        self._mark_active()

    async def flush_async(self) -> None:
        self._ensure_open("flush")
        await self.session.flush_async()

    async def dispose_async(self) -> None:
        if self.state is UnitOfWorkState.DISPOSED:
            return
        was_active = self.state is UnitOfWorkState.ACTIVE
        self.state = UnitOfWorkState.DISPOSED
        self._repositories.clear()
        try:
            if was_active:
                self._log.info("Disposing with an active transaction, rolling back")
                await self.session.rollback_async()
        finally:
            await self.session.close_async()
            self._log.debug("Unit of work disposed")

    # --- Scoped acquisition ---

    def __enter__(self):
        self._trace_token = bind_trace_id(self.trace_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            self.dispose()
        finally:
            self._reset_trace()

    async def __aenter__(self):
        self._trace_token = bind_trace_id(self.trace_id)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            await self.dispose_async()
        finally:
            self._reset_trace()

    def _reset_trace(self) -> None:
        if self._trace_token is not None:
            reset_trace_id(self._trace_token)
            self._trace_token = None
