import logging
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .crud.unit_of_work import SqlAlchemyUnitOfWork
from .database import get_session
from .domain.ports.cache import AuthorizationCache
from .domain.ports.moderation_log import ModerationLog
from .domain.ports.unit_of_work import UnitOfWork
from .domain.ports.user import UserData
from .errors import AuthError, AuthorizationError, ValidationError
from .infrastructure.authz_cache import RedisAuthorizationCache
from .infrastructure.moderation_log import LoggingModerationLog
from .infrastructure.redis import get_redis
from .schemas.seed import PermissionSeed
from .security.token_inspection import ExpiredTokenError, InvalidTokenError, validate_access_token
from .services.admin.access import AccessPolicy
from .services.admin.permission_admin_service import PermissionAdminService
from .services.admin.seed import load_permission_seed
from .services.authorization import (
    AuthorizationEngine,
    MembershipResolver,
    SubjectResolver,
    build_ownership_registry,
)
from .services.catalog_service import PermissionCatalog
from .services.role_service import RoleRegistry

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


def get_uow(db: AsyncSession = Depends(get_db)) -> UnitOfWork:
    return SqlAlchemyUnitOfWork(db)


def get_authz_cache() -> AuthorizationCache | None:
    if not settings.authz_cache_enabled:
        return None
    try:
        client = get_redis()
    except RuntimeError:
        logger.warning("Authorization cache enabled but Redis is not initialized")
        return None
    return RedisAuthorizationCache(client, settings.authz_cache_ttl_seconds)


def get_moderation_log() -> ModerationLog:
    return LoggingModerationLog()


def get_permission_seed(request: Request) -> PermissionSeed:
    seed = getattr(request.app.state, "permission_seed", None)
    if seed is None:
        seed = load_permission_seed(settings.permission_seed_path)
        request.app.state.permission_seed = seed
    return seed


def get_membership_resolver(
    uow: UnitOfWork = Depends(get_uow),
    cache: AuthorizationCache | None = Depends(get_authz_cache),
) -> MembershipResolver:
    return MembershipResolver(uow.memberships, cache)


def get_authorization_engine(
    uow: UnitOfWork = Depends(get_uow),
    cache: AuthorizationCache | None = Depends(get_authz_cache),
    memberships: MembershipResolver = Depends(get_membership_resolver),
) -> AuthorizationEngine:
    return AuthorizationEngine(
        uow.permissions,
        memberships,
        SubjectResolver(uow.roles, uow.users, cache),
        ownership=build_ownership_registry(uow.users),
    )


def get_access_policy(
    memberships: MembershipResolver = Depends(get_membership_resolver),
) -> AccessPolicy:
    return AccessPolicy(memberships)


def get_permission_catalog(
    uow: UnitOfWork = Depends(get_uow),
    moderation_log: ModerationLog = Depends(get_moderation_log),
) -> PermissionCatalog:
    return PermissionCatalog(
        uow,
        moderation_log=moderation_log,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )


def get_role_registry(
    uow: UnitOfWork = Depends(get_uow),
    cache: AuthorizationCache | None = Depends(get_authz_cache),
) -> RoleRegistry:
    return RoleRegistry(uow, cache=cache)


def get_admin_service(
    uow: UnitOfWork = Depends(get_uow),
    roles: RoleRegistry = Depends(get_role_registry),
    access: AccessPolicy = Depends(get_access_policy),
    cache: AuthorizationCache | None = Depends(get_authz_cache),
    moderation_log: ModerationLog = Depends(get_moderation_log),
) -> PermissionAdminService:
    return PermissionAdminService(
        uow, roles, access, cache=cache, moderation_log=moderation_log
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    uow: UnitOfWork = Depends(get_uow),
) -> UserData:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError("Not authenticated")

    try:
        payload = validate_access_token(credentials.credentials)
    except ExpiredTokenError:
        raise AuthError("Token has expired") from None
    except InvalidTokenError:
        raise AuthError("Invalid token") from None

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise AuthError("Invalid token payload") from None

    user = await uow.users.get(user_id)
    if user is None:
        raise AuthError("User not found")
    return user


async def get_current_user_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    uow: UnitOfWork = Depends(get_uow),
) -> UserData | None:
    if credentials is None:
        return None
    return await get_current_user(credentials=credentials, uow=uow)


def require_site_admin(operation: str) -> Callable[..., Awaitable[UserData]]:
    """Dependency factory that lets only global administrators through."""

    async def dependency(
        user: UserData = Depends(get_current_user),
        access: AccessPolicy = Depends(get_access_policy),
    ) -> UserData:
        access.ensure_site_admin(user, operation)
        return user

    return dependency


def require_community_moderator(
    operation: str, community_param: str = "community_id"
) -> Callable[..., Awaitable[UserData]]:
    async def dependency(
        request: Request,
        user: UserData = Depends(get_current_user),
        access: AccessPolicy = Depends(get_access_policy),
    ) -> UserData:
        community_id = _community_from_request(request, community_param)
        if community_id is None:
            raise ValidationError(f"{community_param} is required")
        await access.ensure_community_moderator(user, community_id, operation)
        return user

    return dependency


def require_authorization(
    resource: str, action: str, community_param: str | None = None
) -> Callable[..., Awaitable[UserData | None]]:
    """Dependency factory guarding an endpoint with one authorization decision.

    The community is read from the path parameter or query parameter named
    ``community_param`` when one is given.
    """

    async def dependency(
        request: Request,
        user: UserData | None = Depends(get_current_user_optional),
        engine: AuthorizationEngine = Depends(get_authorization_engine),
    ) -> UserData | None:
        community_id = None
        if community_param is not None:
            community_id = _community_from_request(request, community_param)
        if not await engine.authorize(user, resource, action, community_id):
            raise AuthorizationError()
        return user

    return dependency


def _community_from_request(request: Request, name: str) -> uuid.UUID | None:
    raw = request.path_params.get(name) or request.query_params.get(name)
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise ValidationError(f"{name} must be a valid UUID") from None
