from __future__ import annotations

import uuid
from collections.abc import Collection
from datetime import datetime
from typing import Protocol


class RoleData(Protocol):
    id: uuid.UUID
    name: str
    description: str | None
    is_system: bool
    version: int
    created_at: datetime
    updated_at: datetime


class RoleAssignmentData(Protocol):
    id: uuid.UUID
    user_id: uuid.UUID
    role_id: uuid.UUID
    community_id: uuid.UUID | None
    granted_by: uuid.UUID | None
    expires_at: datetime | None
    granted_at: datetime


class RoleStore(Protocol):
    async def get(self, role_id: uuid.UUID) -> RoleData | None:
        ...

    async def get_by_name(self, name: str) -> RoleData | None:
        ...

    async def get_by_names(self, names: Collection[str]) -> list[RoleData]:
        ...

    async def list_all(self) -> list[RoleData]:
        ...

    async def add(
        self, name: str, description: str | None = None, is_system: bool = False
    ) -> RoleData:
        ...

    async def save(self, role: RoleData) -> RoleData:
        ...

    async def delete(self, role_id: uuid.UUID) -> None:
        ...

    async def bump_version(self, role_id: uuid.UUID, expected_version: int) -> bool:
        """Compare-and-set the role version; False when it no longer matches."""
        ...

    async def permission_ids(self, role_id: uuid.UUID) -> set[uuid.UUID]:
        ...

    async def link(
        self, role_ids: Collection[uuid.UUID], permission_ids: Collection[uuid.UUID]
    ) -> int:
        """Link every pair that is not linked yet; return the number of new links."""
        ...

    async def unlink(
        self, role_ids: Collection[uuid.UUID], permission_ids: Collection[uuid.UUID]
    ) -> int:
        ...

    async def unlink_everywhere(self, permission_ids: Collection[uuid.UUID]) -> int:
        ...

    async def count_assignments(self, role_id: uuid.UUID) -> int:
        ...

    async def add_assignment(
        self,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
        *,
        community_id: uuid.UUID | None = None,
        expires_at: datetime | None = None,
        granted_by: uuid.UUID | None = None,
    ) -> RoleAssignmentData:
        ...

    async def find_assignment(
        self, user_id: uuid.UUID, role_id: uuid.UUID, community_id: uuid.UUID | None
    ) -> RoleAssignmentData | None:
        ...

    async def get_assignment(self, assignment_id: uuid.UUID) -> RoleAssignmentData | None:
        ...

    async def save_assignment(self, assignment: RoleAssignmentData) -> RoleAssignmentData:
        ...

    async def delete_assignment(self, assignment_id: uuid.UUID) -> None:
        ...

    async def list_assignments(self, user_id: uuid.UUID) -> list[RoleAssignmentData]:
        ...
