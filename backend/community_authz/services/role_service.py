from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from ..domain.authz import utcnow
from ..domain.enums import RolePermissionMode
from ..domain.ports.cache import AuthorizationCache
from ..domain.ports.permission import PermissionData
from ..domain.ports.role import RoleAssignmentData, RoleData
from ..domain.ports.unit_of_work import UnitOfWork
from ..errors import ConflictError, IntegrityError, NotFoundError, ValidationError
from ..schemas.role import RoleCreate, RoleUpdate

logger = logging.getLogger(__name__)


@dataclass
class RoleDetails:
    role: RoleData
    permission_ids: set[uuid.UUID]
    assignment_count: int


@dataclass
class RolePermissionChange:
    role: RoleData
    permission_ids: set[uuid.UUID]
    affected: list[PermissionData]


@dataclass
class AssignmentStatus:
    assignment: RoleAssignmentData
    is_expired: bool


class RoleRegistry:
    """Named bundles of permissions and their assignment to users."""

    def __init__(
        self,
        uow: UnitOfWork,
        *,
        cache: AuthorizationCache | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow = uow
        self.cache = cache
        self.clock = clock

    async def _get(self, role_id: uuid.UUID) -> RoleData:
        role = await self.uow.roles.get(role_id)
        if role is None:
            raise NotFoundError("Role not found")
        return role

    async def create_role(self, payload: RoleCreate) -> RoleData:
        name = payload.name.strip()
        if not name:
            raise ValidationError("name is required")
        try:
            if await self.uow.roles.get_by_name(name) is not None:
                raise ConflictError("A role with this name already exists")
            role = await self.uow.roles.add(name, payload.description, is_system=False)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise
        logger.info("Role created id=%s name=%s", role.id, name)
        return role

    async def get_role(self, role_id: uuid.UUID) -> RoleDetails:
        role = await self._get(role_id)
        return RoleDetails(
            role=role,
            permission_ids=await self.uow.roles.permission_ids(role.id),
            assignment_count=await self.uow.roles.count_assignments(role.id),
        )

    async def list_roles(self) -> list[RoleData]:
        return await self.uow.roles.list_all()

    async def update_role(self, role_id: uuid.UUID, payload: RoleUpdate) -> RoleData:
        changes = payload.model_dump(exclude_unset=True)
        try:
            role = await self._get(role_id)
            new_name = changes.get("name")
            if new_name is not None:
                new_name = new_name.strip()
                if not new_name:
                    raise ValidationError("name cannot be blank")
                if new_name != role.name:
                    if role.is_system:
                        raise IntegrityError("System roles cannot be renamed")
                    if await self.uow.roles.get_by_name(new_name) is not None:
                        raise ConflictError("A role with this name already exists")
                    role.name = new_name
            if "description" in changes:
                role.description = changes["description"]
            role = await self.uow.roles.save(role)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise
        logger.info("Role updated id=%s fields=%s", role_id, sorted(changes))
        return role

    async def delete_role(self, role_id: uuid.UUID) -> None:
        try:
            role = await self._get(role_id)
            if role.is_system:
                raise IntegrityError("System roles cannot be deleted")
            assignments = await self.uow.roles.count_assignments(role.id)
            if assignments:
                raise IntegrityError(
                    "Role is still assigned to users",
                    details={"assignment_count": assignments},
                )
            await self.uow.roles.delete(role.id)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise
        logger.info("Role deleted id=%s", role_id)

    async def set_permissions(
        self,
        role_id: uuid.UUID,
        permission_ids: Sequence[uuid.UUID],
        mode: RolePermissionMode,
        expected_version: int | None = None,
    ) -> RolePermissionChange:
        """Add, remove or replace the permissions linked to a role.

        All ids must exist before anything is written. The role version is
        bumped with a compare-and-set, so a concurrent edit or a stale
        ``expected_version`` fails with ``ConflictError``.
        """
        requested = list(dict.fromkeys(permission_ids))
        try:
            role = await self._get(role_id)
            if expected_version is not None and role.version != expected_version:
                raise ConflictError(
                    "Role was modified by another request",
                    details={"expected_version": expected_version, "current_version": role.version},
                )

            found = await self.uow.permissions.get_many(requested)
            missing = set(requested) - {permission.id for permission in found}
            if missing:
                raise ValidationError(
                    "Some permissions were not found",
                    details={"missing_ids": sorted(str(pid) for pid in missing)},
                )

            wanted = set(requested)
            if mode is RolePermissionMode.ADD:
                await self.uow.roles.link([role.id], wanted)
            elif mode is RolePermissionMode.REMOVE:
                await self.uow.roles.unlink([role.id], wanted)
            else:
                current = await self.uow.roles.permission_ids(role.id)
                await self.uow.roles.unlink([role.id], current - wanted)
                await self.uow.roles.link([role.id], wanted - current)

            if not await self.uow.roles.bump_version(role.id, role.version):
                raise ConflictError("Role was modified by another request")
            linked = await self.uow.roles.permission_ids(role.id)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        role = await self._get(role_id)
        logger.info(
            "Role permissions changed id=%s mode=%s count=%s version=%s",
            role_id,
            mode.value,
            len(requested),
            role.version,
        )
        return RolePermissionChange(role=role, permission_ids=linked, affected=found)

    async def assign_role(
        self,
        role_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        community_id: uuid.UUID | None = None,
        expires_at: datetime | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> RoleAssignmentData:
        if expires_at is not None and expires_at <= self.clock():
            raise ValidationError("expires_at must be in the future")
        try:
            await self._get(role_id)
            if await self.uow.users.get(user_id) is None:
                raise NotFoundError("User not found")
            if community_id is not None:
                if await self.uow.memberships.get_community(community_id) is None:
                    raise NotFoundError("Community not found")

            assignment = await self.uow.roles.find_assignment(user_id, role_id, community_id)
            if assignment is None:
                assignment = await self.uow.roles.add_assignment(
                    user_id,
                    role_id,
                    community_id=community_id,
                    expires_at=expires_at,
                    granted_by=actor_id,
                )
            else:
                assignment.expires_at = expires_at
                assignment.granted_by = actor_id
                assignment = await self.uow.roles.save_assignment(assignment)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        if self.cache is not None:
            await self.cache.invalidate_subject(user_id)
        logger.info(
            "Role assigned role=%s user=%s community=%s actor=%s",
            role_id,
            user_id,
            community_id,
            actor_id,
        )
        return assignment

    async def revoke_assignment(self, assignment_id: uuid.UUID) -> None:
        try:
            assignment = await self.uow.roles.get_assignment(assignment_id)
            if assignment is None:
                raise NotFoundError("Role assignment not found")
            user_id = assignment.user_id
            await self.uow.roles.delete_assignment(assignment_id)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        if self.cache is not None:
            await self.cache.invalidate_subject(user_id)
        logger.info("Role assignment revoked id=%s user=%s", assignment_id, user_id)

    async def list_user_roles(self, user_id: uuid.UUID) -> list[AssignmentStatus]:
        if await self.uow.users.get(user_id) is None:
            raise NotFoundError("User not found")
        now = self.clock()
        return [
            AssignmentStatus(
                assignment=assignment,
                is_expired=assignment.expires_at is not None and assignment.expires_at <= now,
            )
            for assignment in await self.uow.roles.list_assignments(user_id)
        ]
