"""Unit of work exposing the identity repositories."""

from datacore.repository.unit_of_work import UnitOfWork
from .repository import TenantRepository, UserDirectory, UserRepository


class IdentityUnitOfWork(UnitOfWork):

    # --- CRUD repositories ---

    @property
    def tenants(self) -> TenantRepository:
        return self.get_repository(TenantRepository)

    @property
    def users(self) -> UserRepository:
        return self.get_repository(UserRepository)

    # --- Read-only repositories ---

    @property
    def user_directory(self) -> UserDirectory:
        return self.get_repository(UserDirectory)
