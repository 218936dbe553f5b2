import uuid

from fastapi import APIRouter, Depends

from ..dependencies import (
    get_admin_service,
    get_current_user,
    get_role_registry,
    require_site_admin,
)
from ..domain.ports.user import UserData
from ..schemas.common import ApiResponse
from ..schemas.permission import (
    PermissionSummary,
    UserPermissionAssignment,
    UserPermissionAssignmentResult,
)
from ..schemas.role import RoleAssignmentRead
from ..services.admin.permission_admin_service import PermissionAdminService
from ..services.role_service import RoleRegistry

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/{user_id}/permissions", response_model=ApiResponse[UserPermissionAssignmentResult])
async def assign_user_permission(
    user_id: uuid.UUID,
    payload: UserPermissionAssignment,
    actor: UserData = Depends(get_current_user),
    service: PermissionAdminService = Depends(get_admin_service),
) -> ApiResponse[UserPermissionAssignmentResult]:
    outcome = await service.assign_user_permission(actor, user_id, payload)
    return ApiResponse(
        message="Permission granted" if outcome.granted else "Permission revoked",
        data=UserPermissionAssignmentResult(
            user_id=outcome.user.id,
            permission=PermissionSummary.model_validate(outcome.permission),
            community_id=outcome.permission.community_id,
            granted=outcome.granted,
            changed=outcome.changed,
            membership_created=outcome.membership_created,
        ),
    )


@router.get("/{user_id}/roles", response_model=ApiResponse[list[RoleAssignmentRead]])
async def list_user_roles(
    user_id: uuid.UUID,
    _: UserData = Depends(require_site_admin("list_user_roles")),
    registry: RoleRegistry = Depends(get_role_registry),
) -> ApiResponse[list[RoleAssignmentRead]]:
    statuses = await registry.list_user_roles(user_id)
    return ApiResponse(
        data=[
            RoleAssignmentRead.model_validate(item.assignment).model_copy(
                update={"is_expired": item.is_expired}
            )
            for item in statuses
        ]
    )
