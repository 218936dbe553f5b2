from __future__ import annotations

from typing import Protocol

from .membership import MembershipStore
from .permission import PermissionStore
from .role import RoleStore
from .user import UserStore


class UnitOfWork(Protocol):
    """Stores sharing one transaction."""

    permissions: PermissionStore
    roles: RoleStore
    memberships: MembershipStore
    users: UserStore

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...

