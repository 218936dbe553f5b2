"""Schema of the versioned default-permission seed file."""

from pydantic import BaseModel, Field

from ..domain.enums import PermissionScope, PermissionType


class SeedRole(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: str | None = None


class SeedPermission(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    type: PermissionType = PermissionType.CORE
    scope: PermissionScope = PermissionScope.SITE
    resource: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=100)
    default_roles: list[str] = Field(default_factory=list)


class PermissionSeed(BaseModel):
    version: int = Field(..., ge=1)
    roles: list[SeedRole]
    permissions: list[SeedPermission]
