from __future__ import annotations

import logging
import uuid

from ...domain.enums import MODERATING_STATUSES, GlobalRole
from ...domain.ports.user import UserData
from ...errors import AuthorizationError
from ..authorization.resolver import MembershipResolver

logger = logging.getLogger(__name__)


def is_site_admin(user: UserData | None) -> bool:
    return user is not None and user.role == GlobalRole.ADMIN.value


class AccessPolicy:
    """Caller rights for administrative operations.

    Denials are logged here and always surface as the same
    ``AuthorizationError``.
    """

    def __init__(self, memberships: MembershipResolver):
        self.memberships = memberships

    def ensure_site_admin(self, user: UserData | None, operation: str) -> None:
        if is_site_admin(user):
            return
        logger.warning(
            "Denied admin operation=%s user=%s",
            operation,
            user.id if user is not None else "anonymous",
        )
        raise AuthorizationError()

    async def ensure_community_moderator(
        self, user: UserData | None, community_id: uuid.UUID, operation: str
    ) -> None:
        if is_site_admin(user):
            return
        if user is not None:
            snapshot = await self.memberships.resolve(user.id, community_id)
            if snapshot.status in MODERATING_STATUSES:
                return
        logger.warning(
            "Denied community operation=%s user=%s community=%s",
            operation,
            user.id if user is not None else "anonymous",
            community_id,
        )
        raise AuthorizationError()
