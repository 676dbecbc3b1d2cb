"""
Model registration: import every table model here so SQLModel.metadata knows it
before the schema is created (DatabaseManager / test fixtures).
"""
from apps.identity.models import Tenant, User

__all__ = ["Tenant", "User"]
