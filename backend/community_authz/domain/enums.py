from __future__ import annotations

from enum import Enum


class PermissionScope(str, Enum):
    SITE = "site"
    SUBREDDIT = "subreddit"


class PermissionType(str, Enum):
    CORE = "core"
    CUSTOM = "custom"


class MembershipStatus(str, Enum):
    """A user's standing in one community.

    ``VISITOR`` is never stored; it is what the resolver reports when no
    membership row exists.
    """

    ADMIN = "admin"
    MODERATOR = "moderator"
    MEMBER = "member"
    BANNED = "banned"
    PENDING = "pending"
    VISITOR = "visitor"


class TierTag(str, Enum):
    """Default-role tags that community-scoped permissions are matched against."""

    VISITOR = "visitor"
    MEMBER = "member"
    MODERATOR = "moderator"
    ADMIN = "admin"


class GlobalRole(str, Enum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    USER = "user"


class RolePermissionMode(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    SET = "set"


class BatchOperation(str, Enum):
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    UPDATE_ROLES = "update_roles"
    DELETE = "delete"


# Statuses that receive moderator-tier defaults inside a community
MODERATING_STATUSES: frozenset[MembershipStatus] = frozenset(
    {MembershipStatus.ADMIN, MembershipStatus.MODERATOR}
)

# Statuses that receive member-tier defaults inside a community
MEMBER_STATUSES: frozenset[MembershipStatus] = frozenset(
    {MembershipStatus.ADMIN, MembershipStatus.MODERATOR, MembershipStatus.MEMBER}
)

# Statuses authorized as visitors; pending join requests count as visitors
VISITOR_STATUSES: frozenset[MembershipStatus] = frozenset(
    {MembershipStatus.VISITOR, MembershipStatus.PENDING}
)

KNOWN_RESOURCES: tuple[str, ...] = ("post", "comment", "subreddit", "user", "media", "message")
