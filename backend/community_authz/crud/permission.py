import uuid
from collections.abc import Collection
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.ports.permission import PermissionQuery
from ..models.permission import Permission
from ..models.role_permission import RolePermission


class PermissionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, permission_id: uuid.UUID) -> Permission | None:
        return await self.session.get(Permission, permission_id)

    async def get_many(self, permission_ids: Collection[uuid.UUID]) -> list[Permission]:
        if not permission_ids:
            return []
        result = await self.session.execute(
            select(Permission).where(Permission.id.in_(list(permission_ids)))
        )
        return list(result.scalars().all())

    async def find_by_key(
        self, name: str, scope: str, community_id: uuid.UUID | None
    ) -> Permission | None:
        query = select(Permission).where(
            Permission.name == name, Permission.scope == scope
        )
        if community_id is None:
            query = query.where(Permission.community_id.is_(None))
        else:
            query = query.where(Permission.community_id == community_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def add(self, **fields: Any) -> Permission:
        permission = Permission(**fields)
        self.session.add(permission)
        await self.session.flush()
        await self.session.refresh(permission)
        return permission

    async def save(self, permission: Permission) -> Permission:
        await self.session.flush()
        await self.session.refresh(permission)
        return permission

    async def delete_many(self, permission_ids: Collection[uuid.UUID]) -> int:
        if not permission_ids:
            return 0
        result = await self.session.execute(
            delete(Permission).where(Permission.id.in_(list(permission_ids)))
        )
        return result.rowcount or 0

    async def set_active(self, permission_ids: Collection[uuid.UUID], is_active: bool) -> int:
        if not permission_ids:
            return 0
        result = await self.session.execute(
            update(Permission)
            .where(Permission.id.in_(list(permission_ids)))
            .where(Permission.is_active.is_not(is_active))
            .values(is_active=is_active)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def search(
        self, query: PermissionQuery, *, offset: int, limit: int
    ) -> tuple[list[Permission], int]:
        conditions = []
        if query.scope:
            conditions.append(Permission.scope == query.scope)
        if query.type:
            conditions.append(Permission.type == query.type)
        if query.resource:
            conditions.append(Permission.resource == query.resource)
        if query.action:
            conditions.append(Permission.action == query.action)
        if query.community_id is not None:
            conditions.append(Permission.community_id == query.community_id)
        if query.search:
            pattern = f"%{query.search}%"
            conditions.append(
                or_(Permission.name.ilike(pattern), Permission.description.ilike(pattern))
            )

        total = await self.session.scalar(
            select(func.count()).select_from(Permission).where(*conditions)
        )
        result = await self.session.execute(
            select(Permission)
            .where(*conditions)
            .order_by(Permission.scope, Permission.type, Permission.name)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def list_for_community(self, community_id: uuid.UUID) -> list[Permission]:
        result = await self.session.execute(
            select(Permission)
            .where(Permission.scope == "subreddit", Permission.community_id == community_id)
            .order_by(Permission.type, Permission.resource, Permission.action)
        )
        return list(result.scalars().all())

    async def list_site_for_resource(self, resource: str) -> list[Permission]:
        result = await self.session.execute(
            select(Permission)
            .where(Permission.scope == "site", Permission.resource == resource)
            .order_by(Permission.action)
        )
        return list(result.scalars().all())

    async def find_matching(
        self,
        *,
        resource: str,
        action: str,
        scope: str,
        community_id: uuid.UUID | None = None,
        default_role: str | None = None,
        permission_ids: Collection[uuid.UUID] | None = None,
        role_ids: Collection[uuid.UUID] | None = None,
    ) -> bool:
        query = select(Permission.id).where(
            Permission.resource == resource,
            Permission.action == action,
            Permission.scope == scope,
            Permission.is_active.is_(True),
        )
        if community_id is not None:
            query = query.where(Permission.community_id == community_id)
        if default_role is not None:
            query = query.where(Permission.default_roles.any(default_role))

        if permission_ids is not None or role_ids is not None:
            sources = []
            if permission_ids:
                sources.append(Permission.id.in_(list(permission_ids)))
            if role_ids:
                sources.append(
                    Permission.id.in_(
                        select(RolePermission.permission_id).where(
                            RolePermission.role_id.in_(list(role_ids))
                        )
                    )
                )
            if not sources:
                return False
            query = query.where(or_(*sources))

        result = await self.session.execute(query.limit(1))
        return result.first() is not None
