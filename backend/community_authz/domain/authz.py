"""Value objects the decision engine works with.

Both snapshots are plain data so they can be cached as JSON and rebuilt
without touching the database.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from .enums import MembershipStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


@dataclass(frozen=True)
class MembershipSnapshot:
    status: MembershipStatus
    custom_grants: frozenset[uuid.UUID] = field(default_factory=frozenset)
    membership_id: uuid.UUID | None = None
    ban_expires_at: datetime | None = None

    @classmethod
    def visitor(cls) -> "MembershipSnapshot":
        return cls(status=MembershipStatus.VISITOR)

    def at(self, now: datetime) -> "MembershipSnapshot":
        """Return the snapshot as it applies at ``now``.

        A ban whose expiry lies in the past no longer applies and the
        membership counts as an ordinary one.
        """
        if (
            self.status is MembershipStatus.BANNED
            and self.ban_expires_at is not None
            and self.ban_expires_at <= now
        ):
            return replace(self, status=MembershipStatus.MEMBER, ban_expires_at=None)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "custom_grants": sorted(str(grant) for grant in self.custom_grants),
            "membership_id": str(self.membership_id) if self.membership_id else None,
            "ban_expires_at": _format_datetime(self.ban_expires_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MembershipSnapshot":
        membership_id = data.get("membership_id")
        return cls(
            status=MembershipStatus(data["status"]),
            custom_grants=frozenset(uuid.UUID(g) for g in data.get("custom_grants", [])),
            membership_id=uuid.UUID(membership_id) if membership_id else None,
            ban_expires_at=_parse_datetime(data.get("ban_expires_at")),
        )


@dataclass(frozen=True)
class AssignmentRef:
    role_id: uuid.UUID
    community_id: uuid.UUID | None = None
    expires_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now


@dataclass(frozen=True)
class SubjectContext:
    """Everything about a user that does not depend on a community."""

    user_id: uuid.UUID
    role: str
    global_role_id: uuid.UUID | None = None
    assignments: tuple[AssignmentRef, ...] = ()
    custom_permission_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)

    def site_role_ids(self, now: datetime) -> set[uuid.UUID]:
        role_ids = {
            ref.role_id
            for ref in self.assignments
            if ref.community_id is None and ref.is_active(now)
        }
        if self.global_role_id is not None:
            role_ids.add(self.global_role_id)
        return role_ids

    def community_role_ids(self, community_id: uuid.UUID, now: datetime) -> set[uuid.UUID]:
        return {
            ref.role_id
            for ref in self.assignments
            if ref.community_id == community_id and ref.is_active(now)
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "role": self.role,
            "global_role_id": str(self.global_role_id) if self.global_role_id else None,
            "assignments": [
                {
                    "role_id": str(ref.role_id),
                    "community_id": str(ref.community_id) if ref.community_id else None,
                    "expires_at": _format_datetime(ref.expires_at),
                }
                for ref in self.assignments
            ],
            "custom_permission_ids": sorted(str(pid) for pid in self.custom_permission_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubjectContext":
        global_role_id = data.get("global_role_id")
        return cls(
            user_id=uuid.UUID(data["user_id"]),
            role=data["role"],
            global_role_id=uuid.UUID(global_role_id) if global_role_id else None,
            assignments=tuple(
                AssignmentRef(
                    role_id=uuid.UUID(item["role_id"]),
                    community_id=(
                        uuid.UUID(item["community_id"]) if item.get("community_id") else None
                    ),
                    expires_at=_parse_datetime(item.get("expires_at")),
                )
                for item in data.get("assignments", [])
            ),
            custom_permission_ids=frozenset(
                uuid.UUID(pid) for pid in data.get("custom_permission_ids", [])
            ),
        )
