from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable

from ...domain.ports.user import UserStore
from ...errors import NotFoundError, ValidationError

OwnerAccessor = Callable[[uuid.UUID], Awaitable[uuid.UUID | None]]


class OwnershipRegistry:
    """Map a resource tag to the function that returns a content item's owner.

    Content modules register their accessor at startup; an accessor returns
    ``None`` when the item does not exist.
    """

    def __init__(self) -> None:
        self._accessors: dict[str, OwnerAccessor] = {}

    def register(self, resource: str, accessor: OwnerAccessor) -> None:
        if resource in self._accessors:
            raise ValueError(f"Owner accessor already registered for '{resource}'")
        self._accessors[resource] = accessor

    def __contains__(self, resource: object) -> bool:
        return resource in self._accessors

    @property
    def resources(self) -> tuple[str, ...]:
        return tuple(sorted(self._accessors))

    async def owner_of(self, resource: str, content_id: uuid.UUID) -> uuid.UUID:
        accessor = self._accessors.get(resource)
        if accessor is None:
            raise ValidationError(
                f"Unknown resource type '{resource}'",
                details={"known": list(self.resources)},
            )
        owner_id = await accessor(content_id)
        if owner_id is None:
            raise NotFoundError("Content not found")
        return owner_id


def build_ownership_registry(users: UserStore) -> OwnershipRegistry:
    """Registry with the accessors this service can answer itself."""
    registry = OwnershipRegistry()

    async def user_owner(user_id: uuid.UUID) -> uuid.UUID | None:
        user = await users.get(user_id)
        return user.id if user is not None else None

    registry.register("user", user_owner)
    return registry
