from typing import Optional
from datacore.logging.logger import get_logger
from datacore.exceptions.errors import DataAccessError
from datacore.repository.results import GetManyAndCountResult
from .models import Tenant, User
from .unit_of_work import IdentityUnitOfWork

class IdentityService:
    def __init__(self, uow: IdentityUnitOfWork):
        """Initialize Identity Service with a unit of work scoped to one operation."""
        self.uow = uow

    async def register_tenant_admin(self, username: str, email: str, tenant_name: str) -> User:
        """Register new tenant and its admin in one transaction."""
        await self.uow.begin_transaction_async()
        try:
            tenant = await self.uow.tenants.add_async(Tenant(name=tenant_name))
            await self.uow.flush_async()
            user = await self.uow.users.add_async(
                User(username=username, email=email, tenant_id=tenant.id, role="admin")
            )
            await self.uow.commit_async()
        except DataAccessError:
            await self.uow.rollback_async()
            raise

        get_logger("identity").info(f"Tenant {tenant_name} created with admin {username}.")
        return user

    async def invite_member(self, tenant_id: int, username: str, email: str) -> Optional[User]:
        """Add a member; returns None (nothing written) when the user is invalid or taken."""
        result = await self.uow.users.try_add_async(
            User(username=username, email=email, tenant_id=tenant_id)
        )
        if not result.ok:
            get_logger("identity").info(f"Member {username} not added: {result.error.message}")
            return None
        return result.entity

    def list_users(self, query_string: Optional[str]) -> GetManyAndCountResult[User]:
        """Page through users with a client-supplied query string."""
        return self.uow.user_directory.get_many_and_count_from_query(query_string)
