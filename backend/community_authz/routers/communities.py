import uuid

from fastapi import APIRouter, Depends, Response, status

from ..dependencies import get_permission_catalog, require_community_moderator
from ..domain.ports.user import UserData
from ..schemas.common import ApiResponse
from ..schemas.permission import (
    CommunityPermissionGroups,
    CommunityPermissionList,
    CommunityPermissionUpsert,
    PermissionRead,
)
from ..services.catalog_service import PermissionCatalog

router = APIRouter(prefix="/communities", tags=["communities"])


@router.get("/{community_id}/permissions", response_model=ApiResponse[CommunityPermissionList])
async def list_community_permissions(
    community_id: uuid.UUID,
    _: UserData = Depends(require_community_moderator("list_community_permissions")),
    catalog: PermissionCatalog = Depends(get_permission_catalog),
) -> ApiResponse[CommunityPermissionList]:
    listing = await catalog.list_for_community(community_id)

    def read(items):
        return [PermissionRead.model_validate(item) for item in items]

    return ApiResponse(
        data=CommunityPermissionList(
            community_id=community_id,
            count=len(listing.all),
            all=read(listing.all),
            grouped=CommunityPermissionGroups(
                **{tier: read(items) for tier, items in listing.grouped.items()}
            ),
        )
    )


@router.post("/{community_id}/permissions", response_model=ApiResponse[PermissionRead])
async def upsert_community_permission(
    community_id: uuid.UUID,
    payload: CommunityPermissionUpsert,
    response: Response,
    actor: UserData = Depends(require_community_moderator("upsert_community_permission")),
    catalog: PermissionCatalog = Depends(get_permission_catalog),
) -> ApiResponse[PermissionRead]:
    permission, created = await catalog.upsert_community_permission(
        community_id, payload, actor_id=actor.id
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return ApiResponse(
        message="Permission created" if created else "Permission updated",
        data=PermissionRead.model_validate(permission),
    )
