from __future__ import annotations

import uuid
from typing import Protocol

from ..authz import MembershipSnapshot, SubjectContext


class AuthorizationCache(Protocol):
    """Read-through cache for resolved membership and subject context.

    Implementations swallow their own transport errors: a miss is always an
    acceptable answer.
    """

    async def get_membership(
        self, user_id: uuid.UUID, community_id: uuid.UUID
    ) -> MembershipSnapshot | None:
        ...

    async def set_membership(
        self, user_id: uuid.UUID, community_id: uuid.UUID, snapshot: MembershipSnapshot
    ) -> None:
        ...

    async def invalidate_membership(
        self, user_id: uuid.UUID, community_id: uuid.UUID
    ) -> None:
        ...

    async def get_subject(self, user_id: uuid.UUID) -> SubjectContext | None:
        ...

    async def set_subject(self, user_id: uuid.UUID, context: SubjectContext) -> None:
        ...

    async def invalidate_subject(self, user_id: uuid.UUID) -> None:
        ...
