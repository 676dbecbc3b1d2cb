import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from sqlmodel import SQLModel, Field
from typing import Optional


class UserStatus(str, Enum):
    ACTIVE = "Active"
    EXPIRED = "Expired"
    SUSPENDED = "Suspended"


class Tenant(SQLModel, table=True):
    __tablename__ = "tenants"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    max_users: int = Field(default=20)
    is_active: bool = Field(default=True)
    external_id: uuid.UUID = Field(default_factory=uuid.uuid4, unique=True)
    monthly_fee: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    storage_quota_gb: float = Field(default=10.0)
    founded_on: Optional[date] = None

class User(SQLModel, table=True):
    __tablename__ = "users"
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True)
    email: str
    status: UserStatus = Field(default=UserStatus.ACTIVE)
    age: Optional[int] = None
    tenant_id: Optional[int] = Field(default=None, foreign_key="tenants.id")
    role: str = Field(default="member")  # admin, member
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
