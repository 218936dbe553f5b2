from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime

from ...domain.authz import utcnow
from ...domain.enums import (
    MEMBER_STATUSES,
    MODERATING_STATUSES,
    VISITOR_STATUSES,
    GlobalRole,
    MembershipStatus,
    PermissionScope,
    TierTag,
)
from ...domain.ports.permission import PermissionStore
from ...domain.ports.user import UserData
from ...errors import ValidationError
from .ownership import OwnershipRegistry
from .resolver import MembershipResolver, SubjectResolver

logger = logging.getLogger(__name__)

_SITE = PermissionScope.SITE.value
_SUBREDDIT = PermissionScope.SUBREDDIT.value


class AuthorizationEngine:
    """Decide whether a user may perform an action, optionally in a community.

    Rules are evaluated in a fixed order and the first one that matches
    decides:

    1. a ban in the given community denies
    2. the global ``admin`` role allows
    3. an active site permission held through the global role, a site-wide
       role assignment or a direct user grant allows
    4. community moderators and admins get permissions tagged ``moderator``
    5. custom grants on the membership and community-scoped role
       assignments allow
    6. members, moderators and admins get permissions tagged ``member``
    7. visitors and pending members get permissions tagged ``visitor``
    8. anything else denies

    Anonymous callers only see site permissions tagged ``visitor`` and the
    visitor tier of a community.
    """

    def __init__(
        self,
        permissions: PermissionStore,
        memberships: MembershipResolver,
        subjects: SubjectResolver,
        *,
        ownership: OwnershipRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.permissions = permissions
        self.memberships = memberships
        self.subjects = subjects
        self.ownership = ownership or OwnershipRegistry()
        self.clock = clock

    async def authorize(
        self,
        user: UserData | None,
        resource: str,
        action: str,
        community_id: uuid.UUID | None = None,
    ) -> bool:
        if not resource or not action:
            raise ValidationError("resource and action are required")

        if user is None:
            allowed, reason = await self._evaluate_anonymous(resource, action, community_id)
        else:
            allowed, reason = await self._evaluate(user, resource, action, community_id)

        logger.debug(
            "authz decision user=%s resource=%s action=%s community=%s allowed=%s reason=%s",
            user.id if user is not None else "anonymous",
            resource,
            action,
            community_id,
            allowed,
            reason,
        )
        return allowed

    async def authorize_owner_or_any(
        self,
        user: UserData | None,
        resource: str,
        content_id: uuid.UUID,
        own_action: str,
        any_action: str,
        community_id: uuid.UUID | None = None,
    ) -> bool:
        """Check ``own_action`` for the content's owner, ``any_action`` otherwise."""
        owner_id = await self.ownership.owner_of(resource, content_id)
        action = own_action if user is not None and user.id == owner_id else any_action
        return await self.authorize(user, resource, action, community_id)

    async def check_permissions(
        self,
        user: UserData | None,
        checks: Iterable[tuple[str, str]],
        community_id: uuid.UUID | None = None,
        *,
        require_all: bool = True,
    ) -> bool:
        checks = list(checks)
        if not checks:
            raise ValidationError("At least one (resource, action) pair is required")
        for resource, action in checks:
            allowed = await self.authorize(user, resource, action, community_id)
            if require_all and not allowed:
                return False
            if not require_all and allowed:
                return True
        return require_all

    async def _evaluate(
        self,
        user: UserData,
        resource: str,
        action: str,
        community_id: uuid.UUID | None,
    ) -> tuple[bool, str]:
        membership = None
        if community_id is not None:
            membership = await self.memberships.resolve(user.id, community_id)
            if membership.status is MembershipStatus.BANNED:
                return False, "banned"

        if user.role == GlobalRole.ADMIN.value:
            return True, "site_admin"

        now = self.clock()
        subject = await self.subjects.resolve(user)
        if await self.permissions.find_matching(
            resource=resource,
            action=action,
            scope=_SITE,
            role_ids=subject.site_role_ids(now),
            permission_ids=subject.custom_permission_ids,
        ):
            return True, "site_grant"

        if membership is None:
            return False, "no_match"

        status = membership.status
        if status in MODERATING_STATUSES and await self._community_default(
            resource, action, community_id, TierTag.MODERATOR
        ):
            return True, "moderator_default"

        # Pending join requests and non-members hold no community grants
        community_role_ids = subject.community_role_ids(community_id, now)
        if (
            status not in VISITOR_STATUSES
            and (membership.custom_grants or community_role_ids)
            and await self.permissions.find_matching(
                resource=resource,
                action=action,
                scope=_SUBREDDIT,
                community_id=community_id,
                permission_ids=membership.custom_grants,
                role_ids=community_role_ids,
            )
        ):
            return True, "community_grant"

        if status in MEMBER_STATUSES and await self._community_default(
            resource, action, community_id, TierTag.MEMBER
        ):
            return True, "member_default"

        if status in VISITOR_STATUSES and await self._community_default(
            resource, action, community_id, TierTag.VISITOR
        ):
            return True, "visitor_default"

        return False, "no_match"

    async def _evaluate_anonymous(
        self, resource: str, action: str, community_id: uuid.UUID | None
    ) -> tuple[bool, str]:
        if await self.permissions.find_matching(
            resource=resource,
            action=action,
            scope=_SITE,
            default_role=TierTag.VISITOR.value,
        ):
            return True, "site_visitor_default"
        if community_id is not None and await self._community_default(
            resource, action, community_id, TierTag.VISITOR
        ):
            return True, "visitor_default"
        return False, "no_match"

    async def _community_default(
        self, resource: str, action: str, community_id: uuid.UUID, tier: TierTag
    ) -> bool:
        return await self.permissions.find_matching(
            resource=resource,
            action=action,
            scope=_SUBREDDIT,
            community_id=community_id,
            default_role=tier.value,
        )
