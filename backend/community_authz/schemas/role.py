import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ..domain.enums import RolePermissionMode
from .permission import PermissionSummary


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: str | None = None


class RoleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=50)
    description: str | None = None


class RoleRead(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    is_system: bool
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleDetail(RoleRead):
    permission_ids: list[uuid.UUID]
    assignment_count: int


class RolePermissionsUpdate(BaseModel):
    permission_ids: list[uuid.UUID]
    mode: RolePermissionMode
    expected_version: int | None = Field(None, ge=1)


class RolePermissionChangeResult(BaseModel):
    role: RoleRead
    permission_ids: list[uuid.UUID]
    affected_permissions: list[PermissionSummary]


class RoleAssignmentCreate(BaseModel):
    user_id: uuid.UUID
    community_id: uuid.UUID | None = None
    expires_at: datetime | None = None


class RoleAssignmentRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    role_id: uuid.UUID
    community_id: uuid.UUID | None
    granted_by: uuid.UUID | None
    expires_at: datetime | None
    granted_at: datetime
    is_expired: bool = False

    model_config = ConfigDict(from_attributes=True)
