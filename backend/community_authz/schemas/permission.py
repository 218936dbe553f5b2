import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ..domain.enums import BatchOperation, PermissionScope, PermissionType


class PermissionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    type: PermissionType
    scope: PermissionScope
    resource: str | None = Field(None, max_length=100)
    action: str = Field(..., min_length=1, max_length=100)
    default_roles: list[str] = Field(default_factory=list)
    community_id: uuid.UUID | None = None
    is_active: bool = True


class PermissionUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    type: PermissionType | None = None
    resource: str | None = Field(None, max_length=100)
    action: str | None = Field(None, min_length=1, max_length=100)
    default_roles: list[str] | None = None
    is_active: bool | None = None


class CommunityPermissionUpsert(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    resource: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=100)
    default_roles: list[str]
    is_active: bool | None = None


class PermissionRead(BaseModel):
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
    created_by: uuid.UUID | None = None
    updated_by: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PermissionSummary(BaseModel):
    id: uuid.UUID
    name: str
    scope: str
    resource: str | None
    action: str

    model_config = ConfigDict(from_attributes=True)


class PermissionPage(BaseModel):
    items: list[PermissionRead]
    total: int
    page: int
    limit: int
    total_pages: int


class CommunityPermissionGroups(BaseModel):
    moderator: list[PermissionRead]
    member: list[PermissionRead]
    visitor: list[PermissionRead]
    other: list[PermissionRead]


class CommunityPermissionList(BaseModel):
    community_id: uuid.UUID
    count: int
    all: list[PermissionRead]
    grouped: CommunityPermissionGroups


class ResourcePermissionOverview(BaseModel):
    resource: str
    count: int
    permissions: list[PermissionRead]
    role_permissions: dict[str, list[PermissionSummary]]


class BatchPermissionRequest(BaseModel):
    operation: BatchOperation
    permission_ids: list[uuid.UUID]
    default_roles: list[str] | None = None
    target_roles: list[str] | None = None


class BatchPermissionResult(BaseModel):
    operation: BatchOperation
    affected_count: int
    permissions: list[PermissionSummary]


class UserPermissionAssignment(BaseModel):
    permission_id: uuid.UUID
    community_id: uuid.UUID | None = None
    granted: bool


class UserPermissionAssignmentResult(BaseModel):
    user_id: uuid.UUID
    permission: PermissionSummary
    community_id: uuid.UUID | None
    granted: bool
    changed: bool
    membership_created: bool = False


class BootstrapResult(BaseModel):
    seed_version: int
    total: int
    created: int
    updated: int
    unchanged: int


class PermissionCheckResult(BaseModel):
    resource: str
    action: str
    community_id: uuid.UUID | None
    has_permission: bool
