from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from ...domain.authz import AssignmentRef, MembershipSnapshot, SubjectContext, utcnow
from ...domain.enums import MembershipStatus
from ...domain.ports.cache import AuthorizationCache
from ...domain.ports.membership import MembershipStore
from ...domain.ports.role import RoleStore
from ...domain.ports.user import UserData, UserStore

logger = logging.getLogger(__name__)


class MembershipResolver:
    """Resolve a user's standing in one community.

    No membership row means ``visitor``. A ban that has run out resolves as
    an ordinary membership.
    """

    def __init__(
        self,
        memberships: MembershipStore,
        cache: AuthorizationCache | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.memberships = memberships
        self.cache = cache
        self.clock = clock

    async def resolve(self, user_id: uuid.UUID, community_id: uuid.UUID) -> MembershipSnapshot:
        snapshot = None
        if self.cache is not None:
            snapshot = await self.cache.get_membership(user_id, community_id)
        if snapshot is None:
            snapshot = await self._load(user_id, community_id)
            if self.cache is not None:
                await self.cache.set_membership(user_id, community_id, snapshot)
        return snapshot.at(self.clock())

    async def _load(self, user_id: uuid.UUID, community_id: uuid.UUID) -> MembershipSnapshot:
        membership = await self.memberships.get(user_id, community_id)
        if membership is None:
            return MembershipSnapshot.visitor()

        status = MembershipStatus(membership.status)
        grants = await self.memberships.grant_ids(membership.id)
        return MembershipSnapshot(
            status=status,
            custom_grants=frozenset(grants),
            membership_id=membership.id,
            ban_expires_at=(
                membership.ban_expires_at if status is MembershipStatus.BANNED else None
            ),
        )


class SubjectResolver:
    """Load the community-independent authority of a user.

    Expired role assignments are kept in the context and filtered at decision
    time, so a cached context never outlives an assignment's expiry.
    """

    def __init__(
        self,
        roles: RoleStore,
        users: UserStore,
        cache: AuthorizationCache | None = None,
    ):
        self.roles = roles
        self.users = users
        self.cache = cache

    async def resolve(self, user: UserData) -> SubjectContext:
        if self.cache is not None:
            cached = await self.cache.get_subject(user.id)
            # A changed global role makes the cached role id meaningless
            if cached is not None and cached.role == user.role:
                return cached

        context = await self._load(user)
        if self.cache is not None:
            await self.cache.set_subject(user.id, context)
        return context

    async def _load(self, user: UserData) -> SubjectContext:
        global_role = await self.roles.get_by_name(user.role)
        assignments = await self.roles.list_assignments(user.id)
        custom_ids = await self.users.custom_permission_ids(user.id)
        return SubjectContext(
            user_id=user.id,
            role=user.role,
            global_role_id=global_role.id if global_role is not None else None,
            assignments=tuple(
                AssignmentRef(
                    role_id=assignment.role_id,
                    community_id=assignment.community_id,
                    expires_at=assignment.expires_at,
                )
                for assignment in assignments
            ),
            custom_permission_ids=frozenset(custom_ids),
        )
