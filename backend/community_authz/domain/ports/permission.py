from __future__ import annotations

import uuid
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol


class PermissionData(Protocol):
    id: uuid.UUID
    name: str
    description: str | None
    type: str
    scope: str
    resource: str | None
    action: str
    default_roles: list[str]
    community_id: uuid.UUID | None
    is_active: bool
    created_by: uuid.UUID | None
    updated_by: uuid.UUID | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class PermissionQuery:
    scope: str | None = None
    type: str | None = None
    resource: str | None = None
    action: str | None = None
    community_id: uuid.UUID | None = None
    search: str | None = None


class PermissionStore(Protocol):
    async def get(self, permission_id: uuid.UUID) -> PermissionData | None:
        ...

    async def get_many(self, permission_ids: Collection[uuid.UUID]) -> list[PermissionData]:
        ...

    async def find_by_key(
        self, name: str, scope: str, community_id: uuid.UUID | None
    ) -> PermissionData | None:
        ...

    async def add(self, **fields: Any) -> PermissionData:
        ...

    async def save(self, permission: PermissionData) -> PermissionData:
        ...

    async def delete_many(self, permission_ids: Collection[uuid.UUID]) -> int:
        ...

    async def set_active(self, permission_ids: Collection[uuid.UUID], is_active: bool) -> int:
        ...

    async def search(
        self, query: PermissionQuery, *, offset: int, limit: int
    ) -> tuple[Sequence[PermissionData], int]:
        ...

    async def list_for_community(self, community_id: uuid.UUID) -> list[PermissionData]:
        ...

    async def list_site_for_resource(self, resource: str) -> list[PermissionData]:
        ...

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
        """Return True when an active permission matches every given criterion.

        ``permission_ids`` and ``role_ids`` restrict the match to permissions
        held directly or linked to one of the roles. Passing either one, even
        empty, turns that restriction on.
        """
        ...
