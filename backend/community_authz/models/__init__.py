from .base import Base
from .user import User
from .community import Community
from .permission import Permission
from .role import Role
from .role_permission import RolePermission
from .user_role import UserRoleAssignment
from .membership import CommunityMembership, MembershipPermission
from .user_permission import UserPermission

__all__ = [
    "Base",
    "User",
    "Community",
    "Permission",
    "Role",
    "RolePermission",
    "UserRoleAssignment",
    "CommunityMembership",
    "MembershipPermission",
    "UserPermission",
]
