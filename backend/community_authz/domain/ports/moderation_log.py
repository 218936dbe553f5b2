from __future__ import annotations

import uuid
from typing import Protocol


class ModerationLog(Protocol):
    async def record(
        self,
        *,
        community_id: uuid.UUID,
        action: str,
        moderator_id: uuid.UUID | None,
        target_type: str,
        target_id: uuid.UUID,
        details: str,
    ) -> None:
        ...
