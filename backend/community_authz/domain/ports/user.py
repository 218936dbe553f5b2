from __future__ import annotations

import uuid
from typing import Protocol


class UserData(Protocol):
    id: uuid.UUID
    username: str
    role: str


class UserStore(Protocol):
    async def get(self, user_id: uuid.UUID) -> UserData | None:
        ...

    async def custom_permission_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        ...

    async def add_custom_permission(self, user_id: uuid.UUID, permission_id: uuid.UUID) -> bool:
        ...

    async def remove_custom_permission(
        self, user_id: uuid.UUID, permission_id: uuid.UUID
    ) -> bool:
        ...
