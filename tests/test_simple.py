"""
Simple test cases to verify test configuration.
"""
import pytest
from sqlalchemy import text

from datacore.config import Settings, settings
from datacore.database.manager import DatabaseManager
from datacore.database.sqlmodel_driver import AsyncSQLModelDriver, SQLModelDriver
from datacore.logging.logger import LogConfig
from datacore.repository.unit_of_work import UnitOfWork
from apps.identity.unit_of_work import IdentityUnitOfWork

IN_MEMORY = Settings(DATABASE_URL="sqlite://", ASYNC_DATABASE_URL="sqlite+aiosqlite://")


def test_driver_connects(driver: SQLModelDriver):
    """Test that the in-memory store answers."""
    driver.connect()
    with driver.engine.connect() as conn:
        assert conn.execute(text("SELECT 1")).scalar() == 1


@pytest.mark.asyncio
async def test_async_driver_connects(async_driver: AsyncSQLModelDriver):
    await async_driver.connect()
    async with async_driver.engine.connect() as conn:
        assert (await conn.execute(text("SELECT 1"))).scalar() == 1


def test_settings_defaults():
    assert settings.DEFAULT_PAGE_SIZE == 25
    assert settings.MAX_PAGE_SIZE >= settings.DEFAULT_PAGE_SIZE


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DEFAULT_PAGE_SIZE", "10")
    monkeypatch.setenv("database_url", "sqlite://")
    configured = Settings()
    assert configured.DEFAULT_PAGE_SIZE == 10
    assert configured.DATABASE_URL == "sqlite://"


def test_database_manager_units_of_work():
    """Each unit of work gets its own session."""
    DatabaseManager.reset_instance()
    try:
        manager = DatabaseManager.get_instance(IN_MEMORY)
        assert DatabaseManager.get_instance() is manager

        first = manager.unit_of_work(IdentityUnitOfWork)
        second = manager.unit_of_work()
        assert isinstance(first, IdentityUnitOfWork)
        assert type(second) is UnitOfWork
        assert first.session is not second.session
        first.dispose()
        second.dispose()
    finally:
        DatabaseManager.reset_instance()


@pytest.mark.asyncio
async def test_database_manager_async_units_of_work():
    DatabaseManager.reset_instance()
    try:
        manager = DatabaseManager.get_instance(IN_MEMORY)
        unit = manager.async_unit_of_work(IdentityUnitOfWork)
        assert unit.session.is_async
        sync_unit = manager.unit_of_work()
        assert not sync_unit.session.is_async
        sync_unit.dispose()
        await unit.dispose_async()
    finally:
        await DatabaseManager.reset_instance_async()


def test_database_manager_configures_logging(monkeypatch):
    calls = []
    monkeypatch.setattr(LogConfig, "setup_logging", classmethod(lambda cls, level=None: calls.append(level)))
    DatabaseManager.reset_instance()
    try:
        DatabaseManager.get_instance(IN_MEMORY)
        DatabaseManager.get_instance()
        assert calls == [None]
    finally:
        DatabaseManager.reset_instance()
