from sqlalchemy.ext.asyncio import AsyncSession

from .membership import MembershipRepository
from .permission import PermissionRepository
from .role import RoleRepository
from .user import UserRepository


class SqlAlchemyUnitOfWork:
    """Repositories bound to one session, committed together."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.permissions = PermissionRepository(session)
        self.roles = RoleRepository(session)
        self.memberships = MembershipRepository(session)
        self.users = UserRepository(session)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
