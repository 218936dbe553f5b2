import uuid

from fastapi import APIRouter, Depends, status

from ..dependencies import get_admin_service, get_role_registry, require_site_admin
from ..domain.ports.user import UserData
from ..schemas.common import ApiResponse
from ..schemas.permission import PermissionSummary
from ..schemas.role import (
    RoleAssignmentCreate,
    RoleAssignmentRead,
    RoleCreate,
    RoleDetail,
    RolePermissionChangeResult,
    RolePermissionsUpdate,
    RoleRead,
    RoleUpdate,
)
from ..services.admin.permission_admin_service import PermissionAdminService
from ..services.role_service import RoleRegistry

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("", response_model=ApiResponse[list[RoleRead]])
async def list_roles(
    _: UserData = Depends(require_site_admin("list_roles")),
    registry: RoleRegistry = Depends(get_role_registry),
) -> ApiResponse[list[RoleRead]]:
    roles = await registry.list_roles()
    return ApiResponse(data=[RoleRead.model_validate(role) for role in roles])


@router.post("", response_model=ApiResponse[RoleRead], status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: RoleCreate,
    _: UserData = Depends(require_site_admin("create_role")),
    registry: RoleRegistry = Depends(get_role_registry),
) -> ApiResponse[RoleRead]:
    role = await registry.create_role(payload)
    return ApiResponse(message="Role created", data=RoleRead.model_validate(role))


# Declared before /{role_id} so "assignments" is not parsed as a role id
@router.delete("/assignments/{assignment_id}", response_model=ApiResponse[None])
async def revoke_assignment(
    assignment_id: uuid.UUID,
    _: UserData = Depends(require_site_admin("revoke_role_assignment")),
    registry: RoleRegistry = Depends(get_role_registry),
) -> ApiResponse[None]:
    await registry.revoke_assignment(assignment_id)
    return ApiResponse(message="Role assignment revoked")


@router.get("/{role_id}", response_model=ApiResponse[RoleDetail])
async def get_role(
    role_id: uuid.UUID,
    _: UserData = Depends(require_site_admin("get_role")),
    registry: RoleRegistry = Depends(get_role_registry),
) -> ApiResponse[RoleDetail]:
    details = await registry.get_role(role_id)
    return ApiResponse(
        data=RoleDetail(
            **RoleRead.model_validate(details.role).model_dump(),
            permission_ids=sorted(details.permission_ids, key=str),
            assignment_count=details.assignment_count,
        )
    )


@router.put("/{role_id}", response_model=ApiResponse[RoleRead])
async def update_role(
    role_id: uuid.UUID,
    payload: RoleUpdate,
    _: UserData = Depends(require_site_admin("update_role")),
    registry: RoleRegistry = Depends(get_role_registry),
) -> ApiResponse[RoleRead]:
    role = await registry.update_role(role_id, payload)
    return ApiResponse(message="Role updated", data=RoleRead.model_validate(role))


@router.delete("/{role_id}", response_model=ApiResponse[None])
async def delete_role(
    role_id: uuid.UUID,
    _: UserData = Depends(require_site_admin("delete_role")),
    registry: RoleRegistry = Depends(get_role_registry),
) -> ApiResponse[None]:
    await registry.delete_role(role_id)
    return ApiResponse(message="Role deleted")


@router.post("/{role_id}/permissions", response_model=ApiResponse[RolePermissionChangeResult])
async def manage_role_permissions(
    role_id: uuid.UUID,
    payload: RolePermissionsUpdate,
    _: UserData = Depends(require_site_admin("manage_role_permissions")),
    service: PermissionAdminService = Depends(get_admin_service),
) -> ApiResponse[RolePermissionChangeResult]:
    change = await service.manage_role_permissions(role_id, payload)
    return ApiResponse(
        message=f"Role permissions updated ({payload.mode.value})",
        data=RolePermissionChangeResult(
            role=RoleRead.model_validate(change.role),
            permission_ids=sorted(change.permission_ids, key=str),
            affected_permissions=[PermissionSummary.model_validate(p) for p in change.affected],
        ),
    )


@router.post(
    "/{role_id}/assign",
    response_model=ApiResponse[RoleAssignmentRead],
    status_code=status.HTTP_201_CREATED,
)
async def assign_role(
    role_id: uuid.UUID,
    payload: RoleAssignmentCreate,
    actor: UserData = Depends(require_site_admin("assign_role")),
    registry: RoleRegistry = Depends(get_role_registry),
) -> ApiResponse[RoleAssignmentRead]:
    assignment = await registry.assign_role(
        role_id,
        payload.user_id,
        community_id=payload.community_id,
        expires_at=payload.expires_at,
        actor_id=actor.id,
    )
    return ApiResponse(message="Role assigned", data=RoleAssignmentRead.model_validate(assignment))
