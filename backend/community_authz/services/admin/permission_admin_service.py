from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from ...domain.enums import BatchOperation, MembershipStatus, PermissionScope
from ...domain.ports.cache import AuthorizationCache
from ...domain.ports.moderation_log import ModerationLog
from ...domain.ports.permission import PermissionData
from ...domain.ports.unit_of_work import UnitOfWork
from ...domain.ports.user import UserData
from ...errors import NotFoundError, ValidationError
from ...schemas.permission import BatchPermissionRequest, UserPermissionAssignment
from ...schemas.role import RolePermissionsUpdate
from ...schemas.seed import PermissionSeed
from ..catalog_service import sync_default_role_links
from ..role_service import RolePermissionChange, RoleRegistry
from .access import AccessPolicy
from .seed import SeedOutcome, apply_permission_seed

logger = logging.getLogger(__name__)


@dataclass
class UserGrantOutcome:
    user: UserData
    permission: PermissionData
    granted: bool
    changed: bool
    membership_created: bool = False


@dataclass
class BatchOutcome:
    operation: BatchOperation
    affected_count: int
    permissions: list[PermissionData]


@dataclass
class _ModLogEntry:
    action: str
    details: str


class PermissionAdminService:
    """Administrative mutations that span the catalog, roles and memberships."""

    def __init__(
        self,
        uow: UnitOfWork,
        roles: RoleRegistry,
        access: AccessPolicy,
        *,
        cache: AuthorizationCache | None = None,
        moderation_log: ModerationLog | None = None,
    ):
        self.uow = uow
        self.roles = roles
        self.access = access
        self.cache = cache
        self.moderation_log = moderation_log

    async def assign_user_permission(
        self,
        actor: UserData,
        user_id: uuid.UUID,
        payload: UserPermissionAssignment,
    ) -> UserGrantOutcome:
        """Grant or revoke one permission for one user.

        Community permissions live on the user's membership of the
        permission's community; site permissions are direct user grants.
        """
        permission = await self.uow.permissions.get(payload.permission_id)
        if permission is None:
            raise NotFoundError("Permission not found")

        if permission.scope == PermissionScope.SUBREDDIT.value:
            await self.access.ensure_community_moderator(
                actor, permission.community_id, "assign_user_permission"
            )
            if payload.community_id != permission.community_id:
                raise ValidationError("Permission does not belong to the given community")
            return await self._assign_community_grant(actor, user_id, permission, payload.granted)

        self.access.ensure_site_admin(actor, "assign_user_permission")
        return await self._assign_site_grant(actor, user_id, permission, payload.granted)

    async def _assign_community_grant(
        self,
        actor: UserData,
        user_id: uuid.UUID,
        permission: PermissionData,
        granted: bool,
    ) -> UserGrantOutcome:
        community_id = permission.community_id
        membership_created = False
        changed = False
        entry: _ModLogEntry | None = None

        try:
            user = await self.uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User not found")

            membership = await self.uow.memberships.get(user_id, community_id)
            if membership is None:
                if not granted:
                    raise NotFoundError("User is not a member of this community")
                membership = await self.uow.memberships.add(
                    user_id, community_id, status=MembershipStatus.MEMBER.value
                )
                await self.uow.memberships.add_grant(membership.id, permission.id)
                membership_created = changed = True
                entry = _ModLogEntry(
                    "user_added_with_permission",
                    f"User {user.username} added with permission {permission.name}",
                )
            elif granted:
                changed = await self.uow.memberships.add_grant(membership.id, permission.id)
                if changed:
                    entry = _ModLogEntry(
                        "permission_granted",
                        f"Permission {permission.name} granted to {user.username}",
                    )
            else:
                changed = await self.uow.memberships.remove_grant(membership.id, permission.id)
                if changed:
                    entry = _ModLogEntry(
                        "permission_revoked",
                        f"Permission {permission.name} revoked from {user.username}",
                    )
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        if changed and self.cache is not None:
            await self.cache.invalidate_membership(user_id, community_id)
        if entry is not None and self.moderation_log is not None:
            await self.moderation_log.record(
                community_id=community_id,
                action=entry.action,
                moderator_id=actor.id,
                target_type="user",
                target_id=user_id,
                details=entry.details,
            )
        logger.info(
            "Community grant %s permission=%s user=%s community=%s changed=%s actor=%s",
            "added" if granted else "removed",
            permission.id,
            user_id,
            community_id,
            changed,
            actor.id,
        )
        return UserGrantOutcome(
            user=user,
            permission=permission,
            granted=granted,
            changed=changed,
            membership_created=membership_created,
        )

    async def _assign_site_grant(
        self,
        actor: UserData,
        user_id: uuid.UUID,
        permission: PermissionData,
        granted: bool,
    ) -> UserGrantOutcome:
        try:
            user = await self.uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User not found")
            if granted:
                changed = await self.uow.users.add_custom_permission(user_id, permission.id)
            else:
                changed = await self.uow.users.remove_custom_permission(user_id, permission.id)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        if changed and self.cache is not None:
            await self.cache.invalidate_subject(user_id)
        logger.info(
            "Site grant %s permission=%s user=%s changed=%s actor=%s",
            "added" if granted else "removed",
            permission.id,
            user_id,
            changed,
            actor.id,
        )
        return UserGrantOutcome(user=user, permission=permission, granted=granted, changed=changed)

    async def manage_role_permissions(
        self, role_id: uuid.UUID, payload: RolePermissionsUpdate
    ) -> RolePermissionChange:
        return await self.roles.set_permissions(
            role_id,
            payload.permission_ids,
            payload.mode,
            expected_version=payload.expected_version,
        )

    async def batch_permission_operation(
        self, payload: BatchPermissionRequest, actor_id: uuid.UUID | None = None
    ) -> BatchOutcome:
        if not payload.permission_ids:
            raise ValidationError("At least one permission id is required")
        operation = payload.operation
        if operation is BatchOperation.UPDATE_ROLES and payload.default_roles is None:
            raise ValidationError("default_roles is required for update_roles")

        try:
            found = await self.uow.permissions.get_many(set(payload.permission_ids))
            if not found:
                raise NotFoundError("No matching permissions found")
            found_ids = [permission.id for permission in found]

            if operation is BatchOperation.ACTIVATE:
                affected = await self.uow.permissions.set_active(found_ids, True)
            elif operation is BatchOperation.DEACTIVATE:
                affected = await self.uow.permissions.set_active(found_ids, False)
            elif operation is BatchOperation.UPDATE_ROLES:
                affected = await self._update_default_roles(
                    found, list(payload.default_roles or []), actor_id
                )
                if payload.target_roles:
                    targets = await self.uow.roles.get_by_names(payload.target_roles)
                    await self.uow.roles.link([role.id for role in targets], found_ids)
            else:
                await self.uow.roles.unlink_everywhere(found_ids)
                affected = await self.uow.permissions.delete_many(found_ids)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        logger.info(
            "Batch permission operation=%s requested=%s affected=%s actor=%s",
            operation.value,
            len(payload.permission_ids),
            affected,
            actor_id,
        )
        return BatchOutcome(operation=operation, affected_count=affected, permissions=found)

    async def _update_default_roles(
        self,
        permissions: list[PermissionData],
        default_roles: list[str],
        actor_id: uuid.UUID | None,
    ) -> int:
        affected = 0
        for permission in permissions:
            previous = list(permission.default_roles)
            if previous == default_roles:
                continue
            permission.default_roles = list(default_roles)
            permission.updated_by = actor_id
            await self.uow.permissions.save(permission)
            await sync_default_role_links(
                self.uow.roles, permission, previous, default_roles
            )
            affected += 1
        return affected

    async def setup_default_permissions(
        self, seed: PermissionSeed, actor_id: uuid.UUID | None = None
    ) -> SeedOutcome:
        try:
            outcome = await apply_permission_seed(self.uow, seed, actor_id)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise
        logger.info(
            "Default permissions applied seed_version=%s created=%s updated=%s unchanged=%s",
            outcome.seed_version,
            outcome.created,
            outcome.updated,
            outcome.unchanged,
        )
        return outcome
