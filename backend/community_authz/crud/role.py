import uuid
from collections.abc import Collection
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.role import Role
from ..models.role_permission import RolePermission
from ..models.user_role import UserRoleAssignment


class RoleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, role_id: uuid.UUID) -> Role | None:
        return await self.session.get(Role, role_id)

    async def get_by_name(self, name: str) -> Role | None:
        result = await self.session.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def get_by_names(self, names: Collection[str]) -> list[Role]:
        if not names:
            return []
        result = await self.session.execute(select(Role).where(Role.name.in_(list(names))))
        return list(result.scalars().all())

    async def list_all(self) -> list[Role]:
        result = await self.session.execute(select(Role).order_by(Role.name))
        return list(result.scalars().all())

    async def add(
        self, name: str, description: str | None = None, is_system: bool = False
    ) -> Role:
        role = Role(name=name, description=description, is_system=is_system)
        self.session.add(role)
        await self.session.flush()
        await self.session.refresh(role)
        return role

    async def save(self, role: Role) -> Role:
        await self.session.flush()
        await self.session.refresh(role)
        return role

    async def delete(self, role_id: uuid.UUID) -> None:
        await self.session.execute(delete(Role).where(Role.id == role_id))

    async def bump_version(self, role_id: uuid.UUID, expected_version: int) -> bool:
        result = await self.session.execute(
            update(Role)
            .where(Role.id == role_id, Role.version == expected_version)
            .values(version=Role.version + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if (result.rowcount or 0) != 1:
            return False
        role = await self.session.get(Role, role_id)
        if role is not None:
            await self.session.refresh(role)
        return True

    async def permission_ids(self, role_id: uuid.UUID) -> set[uuid.UUID]:
        result = await self.session.execute(
            select(RolePermission.permission_id).where(RolePermission.role_id == role_id)
        )
        return set(result.scalars().all())

    async def link(
        self, role_ids: Collection[uuid.UUID], permission_ids: Collection[uuid.UUID]
    ) -> int:
        rows = [
            {"id": uuid.uuid4(), "role_id": role_id, "permission_id": permission_id}
            for role_id in role_ids
            for permission_id in permission_ids
        ]
        if not rows:
            return 0
        result = await self.session.execute(
            insert(RolePermission)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["role_id", "permission_id"])
        )
        return result.rowcount or 0

    async def unlink(
        self, role_ids: Collection[uuid.UUID], permission_ids: Collection[uuid.UUID]
    ) -> int:
        if not role_ids or not permission_ids:
            return 0
        result = await self.session.execute(
            delete(RolePermission).where(
                RolePermission.role_id.in_(list(role_ids)),
                RolePermission.permission_id.in_(list(permission_ids)),
            )
        )
        return result.rowcount or 0

    async def unlink_everywhere(self, permission_ids: Collection[uuid.UUID]) -> int:
        if not permission_ids:
            return 0
        result = await self.session.execute(
            delete(RolePermission).where(
                RolePermission.permission_id.in_(list(permission_ids))
            )
        )
        return result.rowcount or 0

    async def count_assignments(self, role_id: uuid.UUID) -> int:
        total = await self.session.scalar(
            select(func.count())
            .select_from(UserRoleAssignment)
            .where(UserRoleAssignment.role_id == role_id)
        )
        return int(total or 0)

    async def add_assignment(
        self,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
        *,
        community_id: uuid.UUID | None = None,
        expires_at: datetime | None = None,
        granted_by: uuid.UUID | None = None,
    ) -> UserRoleAssignment:
        assignment = UserRoleAssignment(
            user_id=user_id,
            role_id=role_id,
            community_id=community_id,
            expires_at=expires_at,
            granted_by=granted_by,
        )
        self.session.add(assignment)
        await self.session.flush()
        await self.session.refresh(assignment)
        return assignment

    async def find_assignment(
        self, user_id: uuid.UUID, role_id: uuid.UUID, community_id: uuid.UUID | None
    ) -> UserRoleAssignment | None:
        query = select(UserRoleAssignment).where(
            UserRoleAssignment.user_id == user_id,
            UserRoleAssignment.role_id == role_id,
        )
        if community_id is None:
            query = query.where(UserRoleAssignment.community_id.is_(None))
        else:
            query = query.where(UserRoleAssignment.community_id == community_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_assignment(self, assignment_id: uuid.UUID) -> UserRoleAssignment | None:
        return await self.session.get(UserRoleAssignment, assignment_id)

    async def save_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        await self.session.flush()
        await self.session.refresh(assignment)
        return assignment

    async def delete_assignment(self, assignment_id: uuid.UUID) -> None:
        await self.session.execute(
            delete(UserRoleAssignment).where(UserRoleAssignment.id == assignment_id)
        )

    async def list_assignments(self, user_id: uuid.UUID) -> list[UserRoleAssignment]:
        result = await self.session.execute(
            select(UserRoleAssignment)
            .where(UserRoleAssignment.user_id == user_id)
            .order_by(UserRoleAssignment.granted_at)
        )
        return list(result.scalars().all())
