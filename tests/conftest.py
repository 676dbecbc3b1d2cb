"""Test config and shared fixtures."""
import pytest
from typing import AsyncGenerator, Generator, List

from datacore.database.sqlmodel_driver import AsyncSQLModelDriver, SQLModelDriver
from datacore.logging.logger import LogConfig
from apps.identity.models import Tenant, User, UserStatus
from apps.identity.unit_of_work import IdentityUnitOfWork


# In-memory SQLite for tests
TEST_DATABASE_URL = "sqlite://"
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def seed_status_users() -> List[User]:
    return [
        User(id=1, username="ann", email="ann@example.com", status=UserStatus.ACTIVE, age=31),
        User(id=2, username="bob", email="bob@example.com", status=UserStatus.EXPIRED, age=45),
        User(id=3, username="cid", email="cid@example.com", status=UserStatus.ACTIVE, age=22),
    ]


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Install the application log sinks once for the whole run."""
    LogConfig.setup_logging()
    yield


@pytest.fixture(scope="function")
def driver() -> Generator[SQLModelDriver, None, None]:
    """Create a fresh in-memory database per test."""
    # Import all models so they are registered in metadata
    import apps.models  # noqa: F401

    driver = SQLModelDriver(TEST_DATABASE_URL)
    driver.create_schema()
    yield driver
    driver.drop_schema()
    driver.disconnect()


@pytest.fixture
def uow(driver: SQLModelDriver) -> Generator[IdentityUnitOfWork, None, None]:
    """Unit of work scoped to one test."""
    unit = IdentityUnitOfWork(driver.open_session())
    yield unit
    unit.dispose()


@pytest.fixture(scope="function")
async def async_driver() -> AsyncGenerator[AsyncSQLModelDriver, None]:
    """Create a fresh in-memory database per test, reached through aiosqlite."""
    import apps.models  # noqa: F401

    driver = AsyncSQLModelDriver(TEST_ASYNC_DATABASE_URL)
    await driver.create_schema()
    yield driver
    await driver.drop_schema()
    await driver.disconnect()


@pytest.fixture
async def async_uow(async_driver: AsyncSQLModelDriver) -> AsyncGenerator[IdentityUnitOfWork, None]:
    """Unit of work over an asynchronous session."""
    unit = IdentityUnitOfWork(async_driver.open_session())
    yield unit
    await unit.dispose_async()


@pytest.fixture
def status_users(uow: IdentityUnitOfWork) -> List[User]:
    """Three users: ids 1..3 with statuses Active, Expired, Active."""
    users = seed_status_users()
    for user in users:
        uow.users.add(user)
    return users


@pytest.fixture
async def async_status_users(async_uow: IdentityUnitOfWork) -> List[User]:
    """Same three users, written through the asynchronous session."""
    users = seed_status_users()
    for user in users:
        await async_uow.users.add_async(user)
    return users


@pytest.fixture
def many_users(uow: IdentityUnitOfWork) -> List[User]:
    """23 users cycling through the three statuses, with repeating ages for tie-breaking."""
    statuses = [UserStatus.ACTIVE, UserStatus.EXPIRED, UserStatus.SUSPENDED]
    users = []
    for i in range(1, 24):
        user = User(
            id=i,
            username=f"user{i:02d}",
            email=f"user{i:02d}@example.com",
            status=statuses[i % 3],
            age=20 + (i % 4),
        )
        users.append(uow.users.add(user))
    return users


@pytest.fixture
def sample_tenant(uow: IdentityUnitOfWork) -> Tenant:
    """Create sample tenant."""
    return uow.tenants.add(Tenant(id=1, name="test_tenant"))


@pytest.fixture
async def async_sample_tenant(async_uow: IdentityUnitOfWork) -> Tenant:
    return await async_uow.tenants.add_async(Tenant(id=1, name="test_tenant"))
