from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..domain.enums import KNOWN_RESOURCES, PermissionScope, PermissionType, TierTag
from ..domain.ports.moderation_log import ModerationLog
from ..domain.ports.permission import PermissionData, PermissionQuery
from ..domain.ports.role import RoleStore
from ..domain.ports.unit_of_work import UnitOfWork
from ..errors import ConflictError, NotFoundError, ValidationError
from ..schemas.permission import (
    CommunityPermissionUpsert,
    PermissionCreate,
    PermissionUpdate,
)

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "name",
    "description",
    "type",
    "resource",
    "action",
    "default_roles",
    "is_active",
)


@dataclass
class PermissionListing:
    items: list[PermissionData]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class CommunityPermissions:
    community_id: uuid.UUID
    all: list[PermissionData]
    grouped: dict[str, list[PermissionData]] = field(default_factory=dict)


@dataclass
class ResourceOverview:
    resource: str
    permissions: list[PermissionData]
    role_permissions: dict[str, list[PermissionData]]


def validate_scope(scope: PermissionScope | str, community_id: uuid.UUID | None) -> None:
    if scope == PermissionScope.SUBREDDIT and community_id is None:
        raise ValidationError("Community-scoped permissions require a community")
    if scope == PermissionScope.SITE and community_id is not None:
        raise ValidationError("Site-scoped permissions cannot reference a community")


def group_by_tier(permissions: Iterable[PermissionData]) -> dict[str, list[PermissionData]]:
    tiers = (TierTag.MODERATOR.value, TierTag.MEMBER.value, TierTag.VISITOR.value)
    grouped: dict[str, list[PermissionData]] = {tier: [] for tier in tiers}
    grouped["other"] = []
    for permission in permissions:
        matched = False
        for tier in tiers:
            if tier in permission.default_roles:
                grouped[tier].append(permission)
                matched = True
        if not matched:
            grouped["other"].append(permission)
    return grouped


async def sync_default_role_links(
    roles: RoleStore,
    permission: PermissionData,
    previous: Iterable[str],
    current: Iterable[str],
) -> None:
    """Keep role links in step with a site permission's ``default_roles`` tags.

    Tags that do not name an existing role are ignored. Community permissions
    are skipped: their tags name membership tiers, not roles.
    """
    if permission.scope != PermissionScope.SITE.value:
        return
    previous_tags = set(previous)
    current_tags = set(current)
    removed = await roles.get_by_names(previous_tags - current_tags)
    added = await roles.get_by_names(current_tags - previous_tags)
    if removed:
        await roles.unlink([role.id for role in removed], [permission.id])
    if added:
        await roles.link([role.id for role in added], [permission.id])


class PermissionCatalog:
    """Canonical store of permission definitions.

    Every mutation commits once; any failure rolls the whole change back.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        *,
        moderation_log: ModerationLog | None = None,
        default_page_size: int = 50,
        max_page_size: int = 200,
    ):
        self.uow = uow
        self.moderation_log = moderation_log
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    async def create(
        self, payload: PermissionCreate, actor_id: uuid.UUID | None = None
    ) -> PermissionData:
        name = payload.name.strip()
        action = payload.action.strip()
        if not name or not action:
            raise ValidationError("name and action are required")
        validate_scope(payload.scope, payload.community_id)

        try:
            if payload.community_id is not None:
                community = await self.uow.memberships.get_community(payload.community_id)
                if community is None:
                    raise NotFoundError("Community not found")

            existing = await self.uow.permissions.find_by_key(
                name, payload.scope.value, payload.community_id
            )
            if existing is not None:
                raise ConflictError("A permission with this name already exists in this scope")

            permission = await self.uow.permissions.add(
                name=name,
                description=payload.description,
                type=payload.type.value,
                scope=payload.scope.value,
                resource=payload.resource,
                action=action,
                default_roles=list(payload.default_roles),
                community_id=payload.community_id,
                is_active=payload.is_active,
                created_by=actor_id,
            )
            await sync_default_role_links(
                self.uow.roles, permission, [], permission.default_roles
            )
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        logger.info("Permission created id=%s name=%s actor=%s", permission.id, name, actor_id)
        return permission

    async def get(self, permission_id: uuid.UUID) -> PermissionData:
        permission = await self.uow.permissions.get(permission_id)
        if permission is None:
            raise NotFoundError("Permission not found")
        return permission

    async def update(
        self,
        permission_id: uuid.UUID,
        payload: PermissionUpdate,
        actor_id: uuid.UUID | None = None,
    ) -> PermissionData:
        changes = payload.model_dump(exclude_unset=True)
        for required in ("name", "type", "action", "default_roles", "is_active"):
            if required in changes and changes[required] is None:
                raise ValidationError(f"{required} cannot be null")

        try:
            permission = await self.get(permission_id)
            previous_roles = list(permission.default_roles)

            new_name = changes.get("name")
            if new_name is not None:
                new_name = new_name.strip()
                if not new_name:
                    raise ValidationError("name cannot be blank")
                changes["name"] = new_name
                if new_name != permission.name:
                    clash = await self.uow.permissions.find_by_key(
                        new_name, permission.scope, permission.community_id
                    )
                    if clash is not None and clash.id != permission.id:
                        raise ConflictError(
                            "A permission with this name already exists in this scope"
                        )

            for field_name in _UPDATABLE_FIELDS:
                if field_name not in changes:
                    continue
                value = changes[field_name]
                if isinstance(value, PermissionType):
                    value = value.value
                setattr(permission, field_name, value)
            permission.updated_by = actor_id
            permission = await self.uow.permissions.save(permission)

            if "default_roles" in changes:
                await sync_default_role_links(
                    self.uow.roles, permission, previous_roles, changes["default_roles"]
                )
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        logger.info(
            "Permission updated id=%s fields=%s actor=%s",
            permission_id,
            sorted(changes),
            actor_id,
        )
        return permission

    async def delete(self, permission_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> None:
        try:
            permission = await self.get(permission_id)
            await self.uow.roles.unlink_everywhere([permission.id])
            await self.uow.permissions.delete_many([permission.id])
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise
        logger.info("Permission deleted id=%s actor=%s", permission_id, actor_id)

    async def list(
        self,
        query: PermissionQuery | None = None,
        *,
        page: int = 1,
        limit: int | None = None,
    ) -> PermissionListing:
        query = query or PermissionQuery()
        if page < 1:
            raise ValidationError("page must be at least 1")
        if limit is None:
            limit = self.default_page_size
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        limit = min(limit, self.max_page_size)

        items, total = await self.uow.permissions.search(
            query, offset=(page - 1) * limit, limit=limit
        )
        return PermissionListing(items=list(items), total=total, page=page, limit=limit)

    async def list_for_community(self, community_id: uuid.UUID) -> CommunityPermissions:
        community = await self.uow.memberships.get_community(community_id)
        if community is None:
            raise NotFoundError("Community not found")
        permissions = await self.uow.permissions.list_for_community(community_id)
        return CommunityPermissions(
            community_id=community_id,
            all=permissions,
            grouped=group_by_tier(permissions),
        )

    async def upsert_community_permission(
        self,
        community_id: uuid.UUID,
        payload: CommunityPermissionUpsert,
        actor_id: uuid.UUID | None = None,
    ) -> tuple[PermissionData, bool]:
        """Create or update a community permission by name.

        Returns the permission and whether it was created.
        """
        name = payload.name.strip()
        if not name:
            raise ValidationError("name is required")

        try:
            community = await self.uow.memberships.get_community(community_id)
            if community is None:
                raise NotFoundError("Community not found")

            scope = PermissionScope.SUBREDDIT.value
            permission = await self.uow.permissions.find_by_key(name, scope, community_id)
            created = permission is None
            if created:
                permission = await self.uow.permissions.add(
                    name=name,
                    description=payload.description,
                    type=PermissionType.CUSTOM.value,
                    scope=scope,
                    community_id=community_id,
                    resource=payload.resource,
                    action=payload.action,
                    default_roles=list(payload.default_roles),
                    is_active=True if payload.is_active is None else payload.is_active,
                    created_by=actor_id,
                )
            else:
                if payload.description:
                    permission.description = payload.description
                permission.resource = payload.resource
                permission.action = payload.action
                permission.default_roles = list(payload.default_roles)
                if payload.is_active is not None:
                    permission.is_active = payload.is_active
                permission.updated_by = actor_id
                permission = await self.uow.permissions.save(permission)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        action = "permission_created" if created else "permission_updated"
        logger.info(
            "Community permission %s id=%s community=%s actor=%s",
            "created" if created else "updated",
            permission.id,
            community_id,
            actor_id,
        )
        if self.moderation_log is not None:
            await self.moderation_log.record(
                community_id=community_id,
                action=action,
                moderator_id=actor_id,
                target_type="permission",
                target_id=permission.id,
                details=f"{name} ({payload.resource}.{payload.action})",
            )
        return permission, created

    async def resource_overview(self, resource: str) -> ResourceOverview:
        if resource not in KNOWN_RESOURCES:
            raise ValidationError(
                f"Invalid resource type. Valid types: {', '.join(KNOWN_RESOURCES)}"
            )
        permissions = await self.uow.permissions.list_site_for_resource(resource)
        role_permissions: dict[str, list[PermissionData]] = {}
        for permission in permissions:
            for tag in permission.default_roles:
                role_permissions.setdefault(tag, []).append(permission)
        return ResourceOverview(
            resource=resource,
            permissions=permissions,
            role_permissions=role_permissions,
        )
