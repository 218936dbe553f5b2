import uuid

from fastapi import APIRouter, Depends, Query, status

from ..dependencies import (
    get_admin_service,
    get_authorization_engine,
    get_current_user_optional,
    get_permission_catalog,
    get_permission_seed,
    require_site_admin,
)
from ..domain.enums import PermissionScope, PermissionType
from ..domain.ports.permission import PermissionQuery
from ..domain.ports.user import UserData
from ..schemas.common import ApiResponse
from ..schemas.permission import (
    BatchPermissionRequest,
    BatchPermissionResult,
    BootstrapResult,
    PermissionCheckResult,
    PermissionCreate,
    PermissionPage,
    PermissionRead,
    PermissionSummary,
    PermissionUpdate,
    ResourcePermissionOverview,
)
from ..schemas.seed import PermissionSeed
from ..services.admin.permission_admin_service import PermissionAdminService
from ..services.authorization import AuthorizationEngine
from ..services.catalog_service import PermissionCatalog

router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.get("", response_model=ApiResponse[PermissionPage])
async def list_permissions(
    scope: PermissionScope | None = None,
    type: PermissionType | None = None,
    resource: str | None = None,
    action: str | None = None,
    community_id: uuid.UUID | None = None,
    search: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    _: UserData = Depends(require_site_admin("list_permissions")),
    catalog: PermissionCatalog = Depends(get_permission_catalog),
) -> ApiResponse[PermissionPage]:
    query = PermissionQuery(
        scope=scope.value if scope else None,
        type=type.value if type else None,
        resource=resource,
        action=action,
        community_id=community_id,
        search=search.strip() if search else None,
    )
    listing = await catalog.list(query, page=page, limit=limit)
    return ApiResponse(
        data=PermissionPage(
            items=[PermissionRead.model_validate(item) for item in listing.items],
            total=listing.total,
            page=listing.page,
            limit=listing.limit,
            total_pages=listing.total_pages,
        )
    )


@router.get("/check", response_model=ApiResponse[PermissionCheckResult])
async def check_permission(
    resource: str = Query(..., min_length=1),
    action: str = Query(..., min_length=1),
    community_id: uuid.UUID | None = None,
    user: UserData | None = Depends(get_current_user_optional),
    engine: AuthorizationEngine = Depends(get_authorization_engine),
) -> ApiResponse[PermissionCheckResult]:
    allowed = await engine.authorize(user, resource, action, community_id)
    return ApiResponse(
        data=PermissionCheckResult(
            resource=resource,
            action=action,
            community_id=community_id,
            has_permission=allowed,
        )
    )


@router.get("/resource/{resource}", response_model=ApiResponse[ResourcePermissionOverview])
async def get_resource_permissions(
    resource: str,
    _: UserData = Depends(require_site_admin("get_resource_permissions")),
    catalog: PermissionCatalog = Depends(get_permission_catalog),
) -> ApiResponse[ResourcePermissionOverview]:
    overview = await catalog.resource_overview(resource)
    return ApiResponse(
        data=ResourcePermissionOverview(
            resource=overview.resource,
            count=len(overview.permissions),
            permissions=[PermissionRead.model_validate(p) for p in overview.permissions],
            role_permissions={
                tag: [PermissionSummary.model_validate(p) for p in permissions]
                for tag, permissions in overview.role_permissions.items()
            },
        )
    )


@router.post("/batch", response_model=ApiResponse[BatchPermissionResult])
async def batch_permission_operation(
    payload: BatchPermissionRequest,
    actor: UserData = Depends(require_site_admin("batch_permission_operation")),
    service: PermissionAdminService = Depends(get_admin_service),
) -> ApiResponse[BatchPermissionResult]:
    outcome = await service.batch_permission_operation(payload, actor_id=actor.id)
    return ApiResponse(
        message=f"{outcome.affected_count} permissions affected",
        data=BatchPermissionResult(
            operation=outcome.operation,
            affected_count=outcome.affected_count,
            permissions=[PermissionSummary.model_validate(p) for p in outcome.permissions],
        ),
    )


@router.post("/defaults", response_model=ApiResponse[BootstrapResult])
async def setup_default_permissions(
    actor: UserData = Depends(require_site_admin("setup_default_permissions")),
    seed: PermissionSeed = Depends(get_permission_seed),
    service: PermissionAdminService = Depends(get_admin_service),
) -> ApiResponse[BootstrapResult]:
    outcome = await service.setup_default_permissions(seed, actor_id=actor.id)
    return ApiResponse(
        message=(
            f"Default permissions applied: {outcome.created} created, "
            f"{outcome.updated} updated"
        ),
        data=BootstrapResult(
            seed_version=outcome.seed_version,
            total=outcome.total,
            created=outcome.created,
            updated=outcome.updated,
            unchanged=outcome.unchanged,
        ),
    )


@router.get("/{permission_id}", response_model=ApiResponse[PermissionRead])
async def get_permission(
    permission_id: uuid.UUID,
    _: UserData = Depends(require_site_admin("get_permission")),
    catalog: PermissionCatalog = Depends(get_permission_catalog),
) -> ApiResponse[PermissionRead]:
    permission = await catalog.get(permission_id)
    return ApiResponse(data=PermissionRead.model_validate(permission))


@router.post(
    "",
    response_model=ApiResponse[PermissionRead],
    status_code=status.HTTP_201_CREATED,
)
async def create_permission(
    payload: PermissionCreate,
    actor: UserData = Depends(require_site_admin("create_permission")),
    catalog: PermissionCatalog = Depends(get_permission_catalog),
) -> ApiResponse[PermissionRead]:
    permission = await catalog.create(payload, actor_id=actor.id)
    return ApiResponse(
        message="Permission created",
        data=PermissionRead.model_validate(permission),
    )


@router.put("/{permission_id}", response_model=ApiResponse[PermissionRead])
async def update_permission(
    permission_id: uuid.UUID,
    payload: PermissionUpdate,
    actor: UserData = Depends(require_site_admin("update_permission")),
    catalog: PermissionCatalog = Depends(get_permission_catalog),
) -> ApiResponse[PermissionRead]:
    permission = await catalog.update(permission_id, payload, actor_id=actor.id)
    return ApiResponse(
        message="Permission updated",
        data=PermissionRead.model_validate(permission),
    )


@router.delete("/{permission_id}", response_model=ApiResponse[None])
async def delete_permission(
    permission_id: uuid.UUID,
    actor: UserData = Depends(require_site_admin("delete_permission")),
    catalog: PermissionCatalog = Depends(get_permission_catalog),
) -> ApiResponse[None]:
    await catalog.delete(permission_id, actor_id=actor.id)
    return ApiResponse(message="Permission deleted")
