import uuid

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.user import User
from ..models.user_permission import UserPermission


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: uuid.UUID) -> User | None:
        return await self.session.get(User, user_id)

    async def custom_permission_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        result = await self.session.execute(
            select(UserPermission.permission_id).where(UserPermission.user_id == user_id)
        )
        return set(result.scalars().all())

    async def add_custom_permission(self, user_id: uuid.UUID, permission_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            insert(UserPermission)
            .values(id=uuid.uuid4(), user_id=user_id, permission_id=permission_id)
            .on_conflict_do_nothing(index_elements=["user_id", "permission_id"])
        )
        return (result.rowcount or 0) > 0

    async def remove_custom_permission(
        self, user_id: uuid.UUID, permission_id: uuid.UUID
    ) -> bool:
        result = await self.session.execute(
            delete(UserPermission).where(
                UserPermission.user_id == user_id,
                UserPermission.permission_id == permission_id,
            )
        )
        return (result.rowcount or 0) > 0
