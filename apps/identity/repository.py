"""Identity module repository implementations."""

from typing import List, Optional
from datacore.filtering.fields import (
    FieldTable,
    bool_field,
    date_field,
    datetime_field,
    decimal_field,
    enum_field,
    float_field,
    int_field,
    string_field,
    uuid_field,
)
from datacore.repository.base import ReadOnlyRepository, Repository
from datacore.repository.validation import RuleValidator
from .models import Tenant, User, UserStatus

TENANT_FIELDS = FieldTable(
    Tenant,
    int_field("id"),
    string_field("name"),
    int_field("max_users"),
    bool_field("is_active"),
    uuid_field("external_id"),
    decimal_field("monthly_fee"),
    float_field("storage_quota_gb"),
    date_field("founded_on"),
)

USER_FIELDS = FieldTable(
    User,
    int_field("id"),
    string_field("username"),
    string_field("email"),
    enum_field("status", UserStatus),
    int_field("age"),
    int_field("tenant_id"),
    string_field("role"),
    datetime_field("created_at"),
)


class TenantValidator(RuleValidator[Tenant]):
    def __init__(self):
        super().__init__()
        self.rule("name", lambda v: bool(v and v.strip()), "Tenant name is required")
        self.rule("max_users", lambda v: v is not None and v > 0, "max_users must be positive")


class UserValidator(RuleValidator[User]):
    def __init__(self):
        super().__init__()
        self.rule("username", lambda v: bool(v and v.strip()), "Username is required")
        self.rule("username", lambda v: v is None or len(v) <= 50, "Username is too long")
        self.rule("email", lambda v: bool(v) and "@" in v, "A valid email is required")
        self.rule("age", lambda v: v is None or 0 <= v <= 150, "Age must be between 0 and 150")


class TenantRepository(Repository[Tenant]):
    """Tenant repository."""
    fields = TENANT_FIELDS
    validator = TenantValidator()
    unique_key = ("name",)

    def __init__(self, session):
        super().__init__(session, Tenant)

    def get_by_name(self, name: str) -> Optional[Tenant]:
        """Find tenant by name."""
        return self.find_one(name=name)

    async def get_by_name_async(self, name: str) -> Optional[Tenant]:
        return await self.find_one_async(name=name)


class UserRepository(Repository[User]):
    """User repository."""
    fields = USER_FIELDS
    validator = UserValidator()
    unique_key = ("username",)

    def __init__(self, session):
        super().__init__(session, User)

    def get_by_username(self, username: str) -> Optional[User]:
        """Find user by username."""
        return self.find_one(username=username)

    async def get_by_username_async(self, username: str) -> Optional[User]:
        return await self.find_one_async(username=username)

    def get_by_tenant_id(self, tenant_id: int) -> List[User]:
        """Find all users by tenant ID."""
        return self.find_all(tenant_id=tenant_id)


class UserDirectory(ReadOnlyRepository[User]):
    """Read-only listing of users for search screens."""
    fields = USER_FIELDS
    default_sort = "username"

    def __init__(self, session):
        super().__init__(session, User)
