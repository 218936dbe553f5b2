from __future__ import annotations

import uuid
from datetime import datetime
from typing import Protocol


class MembershipData(Protocol):
    id: uuid.UUID
    user_id: uuid.UUID
    community_id: uuid.UUID
    status: str
    ban_reason: str | None
    banned_at: datetime | None
    banned_by: uuid.UUID | None
    ban_expires_at: datetime | None
    joined_at: datetime


class CommunityData(Protocol):
    id: uuid.UUID
    name: str
    is_private: bool


class MembershipStore(Protocol):
    async def get_community(self, community_id: uuid.UUID) -> CommunityData | None:
        ...

    async def get(
        self, user_id: uuid.UUID, community_id: uuid.UUID
    ) -> MembershipData | None:
        ...

    async def add(
        self, user_id: uuid.UUID, community_id: uuid.UUID, *, status: str = "member"
    ) -> MembershipData:
        ...

    async def grant_ids(self, membership_id: uuid.UUID) -> set[uuid.UUID]:
        ...

    async def add_grant(self, membership_id: uuid.UUID, permission_id: uuid.UUID) -> bool:
        """Attach a custom grant; False when it was already attached."""
        ...

    async def remove_grant(self, membership_id: uuid.UUID, permission_id: uuid.UUID) -> bool:
        ...
