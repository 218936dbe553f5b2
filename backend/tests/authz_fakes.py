"""In-memory stand-ins for the repositories, unit of work and cache."""
from __future__ import annotations

import copy
import inspect
import uuid
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from community_authz.domain.authz import MembershipSnapshot, SubjectContext
from community_authz.domain.ports.permission import PermissionQuery

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


@dataclass
class UserRecord:
    username: str
    role: str = "user"
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class CommunityRecord:
    name: str
    is_private: bool = False
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class PermissionRecord:
    name: str
    action: str
    scope: str = "site"
    resource: str | None = "post"
    type: str = "core"
    description: str | None = None
    default_roles: list[str] = field(default_factory=list)
    community_id: uuid.UUID | None = None
    is_active: bool = True
    created_by: uuid.UUID | None = None
    updated_by: uuid.UUID | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = NOW
    updated_at: datetime = NOW


@dataclass
class RoleRecord:
    name: str
    description: str | None = None
    is_system: bool = False
    version: int = 1
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = NOW
    updated_at: datetime = NOW


@dataclass
class AssignmentRecord:
    user_id: uuid.UUID
    role_id: uuid.UUID
    community_id: uuid.UUID | None = None
    granted_by: uuid.UUID | None = None
    expires_at: datetime | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    granted_at: datetime = NOW


@dataclass
class MembershipRecord:
    user_id: uuid.UUID
    community_id: uuid.UUID
    status: str = "member"
    ban_reason: str | None = None
    banned_at: datetime | None = None
    banned_by: uuid.UUID | None = None
    ban_expires_at: datetime | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    joined_at: datetime = NOW


class _TransactionalStore:
    """Opens a unit-of-work snapshot on the first store call of a transaction."""

    uow: FakeUnitOfWork | None = None

    def __getattribute__(self, name: str):
        attr = object.__getattribute__(self, name)
        if not name.startswith("_") and inspect.iscoroutinefunction(attr):
            uow = object.__getattribute__(self, "uow")
            if uow is not None:
                uow.begin()
        return attr

    def _settled(self) -> None:
        # Rows placed directly by a test count as already committed
        if self.uow is not None:
            self.uow.discard_snapshot()


class FakePermissionStore(_TransactionalStore):
    def __init__(self, links: set[tuple[uuid.UUID, uuid.UUID]]):
        self.items: dict[uuid.UUID, PermissionRecord] = {}
        # (role_id, permission_id) pairs shared with FakeRoleStore
        self.links = links
        self.match_calls = 0

    def put(self, permission: PermissionRecord) -> PermissionRecord:
        self.items[permission.id] = permission
        self._settled()
        return permission

    async def get(self, permission_id):
        return self.items.get(permission_id)

    async def get_many(self, permission_ids):
        return [self.items[pid] for pid in permission_ids if pid in self.items]

    async def find_by_key(self, name, scope, community_id):
        for permission in self.items.values():
            if (
                permission.name == name
                and permission.scope == scope
                and permission.community_id == community_id
            ):
                return permission
        return None

    async def add(self, **fields: Any):
        permission = PermissionRecord(**fields)
        self.items[permission.id] = permission
        return permission

    async def save(self, permission):
        self.items[permission.id] = permission
        return permission

    async def delete_many(self, permission_ids):
        removed = 0
        for pid in list(permission_ids):
            if self.items.pop(pid, None) is not None:
                removed += 1
        return removed

    async def set_active(self, permission_ids, is_active):
        count = 0
        for pid in permission_ids:
            if pid in self.items:
                self.items[pid].is_active = is_active
                count += 1
        return count

    async def search(self, query: PermissionQuery, *, offset: int, limit: int):
        matches = [
            permission
            for permission in self.items.values()
            if (query.scope is None or permission.scope == query.scope)
            and (query.type is None or permission.type == query.type)
            and (query.resource is None or permission.resource == query.resource)
            and (query.action is None or permission.action == query.action)
            and (query.community_id is None or permission.community_id == query.community_id)
            and (
                query.search is None
                or query.search.lower() in permission.name.lower()
                or query.search.lower() in (permission.description or "").lower()
            )
        ]
        matches.sort(key=lambda p: (p.scope, p.type, p.name))
        return matches[offset : offset + limit], len(matches)

    async def list_for_community(self, community_id):
        return [
            p
            for p in self.items.values()
            if p.scope == "subreddit" and p.community_id == community_id
        ]

    async def list_site_for_resource(self, resource):
        return sorted(
            (p for p in self.items.values() if p.scope == "site" and p.resource == resource),
            key=lambda p: p.action,
        )

    async def find_matching(
        self,
        *,
        resource: str,
        action: str,
        scope: str,
        community_id: uuid.UUID | None = None,
        default_role: str | None = None,
        permission_ids: Collection[uuid.UUID] | None = None,
        role_ids: Collection[uuid.UUID] | None = None,
    ) -> bool:
        self.match_calls += 1
        restricted = permission_ids is not None or role_ids is not None
        held = set(permission_ids or ())
        linked = {pid for rid, pid in self.links if rid in set(role_ids or ())}
        for permission in self.items.values():
            if (
                permission.resource != resource
                or permission.action != action
                or permission.scope != scope
                or not permission.is_active
            ):
                continue
            if community_id is not None and permission.community_id != community_id:
                continue
            if default_role is not None and default_role not in permission.default_roles:
                continue
            if restricted and permission.id not in held and permission.id not in linked:
                continue
            return True
        return False


class FakeRoleStore(_TransactionalStore):
    def __init__(self, links: set[tuple[uuid.UUID, uuid.UUID]]):
        self.items: dict[uuid.UUID, RoleRecord] = {}
        self.links = links
        self.assignments: dict[uuid.UUID, AssignmentRecord] = {}
        # Set to make the next bump_version lose a concurrent race
        self.fail_next_bump = False

    def put(self, role: RoleRecord) -> RoleRecord:
        self.items[role.id] = role
        self._settled()
        return role

    async def get(self, role_id):
        return self.items.get(role_id)

    async def get_by_name(self, name):
        for role in self.items.values():
            if role.name == name:
                return role
        return None

    async def get_by_names(self, names):
        wanted = set(names)
        return [role for role in self.items.values() if role.name in wanted]

    async def list_all(self):
        return sorted(self.items.values(), key=lambda r: r.name)

    async def add(self, name, description=None, is_system=False):
        role = RoleRecord(name=name, description=description, is_system=is_system)
        self.items[role.id] = role
        return role

    async def save(self, role):
        self.items[role.id] = role
        return role

    async def delete(self, role_id):
        self.items.pop(role_id, None)
        for link in [link for link in self.links if link[0] == role_id]:
            self.links.discard(link)

    async def bump_version(self, role_id, expected_version):
        role = self.items.get(role_id)
        if self.fail_next_bump or role is None or role.version != expected_version:
            self.fail_next_bump = False
            return False
        role.version += 1
        return True

    async def permission_ids(self, role_id):
        return {pid for rid, pid in self.links if rid == role_id}

    async def link(self, role_ids, permission_ids):
        added = 0
        for rid in role_ids:
            for pid in permission_ids:
                if (rid, pid) not in self.links:
                    self.links.add((rid, pid))
                    added += 1
        return added

    async def unlink(self, role_ids, permission_ids):
        removed = 0
        for rid in role_ids:
            for pid in permission_ids:
                if (rid, pid) in self.links:
                    self.links.discard((rid, pid))
                    removed += 1
        return removed

    async def unlink_everywhere(self, permission_ids):
        doomed = [link for link in self.links if link[1] in set(permission_ids)]
        for link in doomed:
            self.links.discard(link)
        return len(doomed)

    async def count_assignments(self, role_id):
        return sum(1 for a in self.assignments.values() if a.role_id == role_id)

    async def add_assignment(
        self, user_id, role_id, *, community_id=None, expires_at=None, granted_by=None
    ):
        assignment = AssignmentRecord(
            user_id=user_id,
            role_id=role_id,
            community_id=community_id,
            expires_at=expires_at,
            granted_by=granted_by,
        )
        self.assignments[assignment.id] = assignment
        return assignment

    async def find_assignment(self, user_id, role_id, community_id):
        for assignment in self.assignments.values():
            if (
                assignment.user_id == user_id
                and assignment.role_id == role_id
                and assignment.community_id == community_id
            ):
                return assignment
        return None

    async def get_assignment(self, assignment_id):
        return self.assignments.get(assignment_id)

    async def save_assignment(self, assignment):
        self.assignments[assignment.id] = assignment
        return assignment

    async def delete_assignment(self, assignment_id):
        self.assignments.pop(assignment_id, None)

    async def list_assignments(self, user_id):
        return [a for a in self.assignments.values() if a.user_id == user_id]


class FakeMembershipStore(_TransactionalStore):
    def __init__(self):
        self.communities: dict[uuid.UUID, CommunityRecord] = {}
        self.items: dict[tuple[uuid.UUID, uuid.UUID], MembershipRecord] = {}
        self.grants: dict[uuid.UUID, set[uuid.UUID]] = {}
        self.get_calls = 0

    def put_community(self, community: CommunityRecord) -> CommunityRecord:
        self.communities[community.id] = community
        self._settled()
        return community

    def put(self, membership: MembershipRecord, grants: Collection[uuid.UUID] = ()) -> MembershipRecord:
        self.items[(membership.user_id, membership.community_id)] = membership
        self.grants[membership.id] = set(grants)
        self._settled()
        return membership

    async def get_community(self, community_id):
        return self.communities.get(community_id)

    async def get(self, user_id, community_id):
        self.get_calls += 1
        return self.items.get((user_id, community_id))

    async def add(self, user_id, community_id, *, status="member"):
        membership = MembershipRecord(user_id=user_id, community_id=community_id, status=status)
        self.items[(user_id, community_id)] = membership
        self.grants[membership.id] = set()
        return membership

    async def grant_ids(self, membership_id):
        return set(self.grants.get(membership_id, set()))

    async def add_grant(self, membership_id, permission_id):
        grants = self.grants.setdefault(membership_id, set())
        if permission_id in grants:
            return False
        grants.add(permission_id)
        return True

    async def remove_grant(self, membership_id, permission_id):
        grants = self.grants.setdefault(membership_id, set())
        if permission_id not in grants:
            return False
        grants.discard(permission_id)
        return True


class FakeUserStore(_TransactionalStore):
    def __init__(self):
        self.items: dict[uuid.UUID, UserRecord] = {}
        self.custom: dict[uuid.UUID, set[uuid.UUID]] = {}

    def put(self, user: UserRecord) -> UserRecord:
        self.items[user.id] = user
        self._settled()
        return user

    async def get(self, user_id):
        return self.items.get(user_id)

    async def custom_permission_ids(self, user_id):
        return set(self.custom.get(user_id, set()))

    async def add_custom_permission(self, user_id, permission_id):
        held = self.custom.setdefault(user_id, set())
        if permission_id in held:
            return False
        held.add(permission_id)
        return True

    async def remove_custom_permission(self, user_id, permission_id):
        held = self.custom.setdefault(user_id, set())
        if permission_id not in held:
            return False
        held.discard(permission_id)
        return True


class FakeUnitOfWork:
    def __init__(self):
        links: set[tuple[uuid.UUID, uuid.UUID]] = set()
        self.permissions = FakePermissionStore(links)
        self.roles = FakeRoleStore(links)
        self.memberships = FakeMembershipStore()
        self.users = FakeUserStore()
        for store in (self.permissions, self.roles, self.memberships, self.users):
            store.uow = self
        self.commits = 0
        self.rollbacks = 0
        self._snapshot: tuple[list, list] | None = None

    def begin(self) -> None:
        if self._snapshot is None:
            self._snapshot = self._capture()

    def discard_snapshot(self) -> None:
        self._snapshot = None

    async def commit(self) -> None:
        self.commits += 1
        self._snapshot = None

    async def rollback(self) -> None:
        self.rollbacks += 1
        if self._snapshot is not None:
            self._restore(*self._snapshot)
            self._snapshot = None

    def _capture(self) -> tuple[list, list]:
        record_maps = (
            self.permissions.items,
            self.roles.items,
            self.roles.assignments,
            self.memberships.communities,
            self.memberships.items,
            self.users.items,
        )
        containers: list = [(container, copy.copy(container)) for container in record_maps]
        containers.append((self.roles.links, set(self.roles.links)))
        for grant_map in (self.memberships.grants, self.users.custom):
            containers.append((grant_map, {key: set(ids) for key, ids in grant_map.items()}))
        records = [
            (record, copy.deepcopy(vars(record)))
            for container in record_maps
            for record in container.values()
        ]
        return containers, records

    @staticmethod
    def _restore(containers: list, records: list) -> None:
        for container, saved in containers:
            container.clear()
            container.update(saved)
        for record, state in records:
            vars(record).clear()
            vars(record).update(state)


class FakeCache:
    def __init__(self):
        self.memberships: dict[tuple[uuid.UUID, uuid.UUID], MembershipSnapshot] = {}
        self.subjects: dict[uuid.UUID, SubjectContext] = {}
        self.invalidated: list[tuple[str, tuple]] = []

    async def get_membership(self, user_id, community_id):
        return self.memberships.get((user_id, community_id))

    async def set_membership(self, user_id, community_id, snapshot):
        self.memberships[(user_id, community_id)] = snapshot

    async def invalidate_membership(self, user_id, community_id):
        self.memberships.pop((user_id, community_id), None)
        self.invalidated.append(("membership", (user_id, community_id)))

    async def get_subject(self, user_id):
        return self.subjects.get(user_id)

    async def set_subject(self, user_id, context):
        self.subjects[user_id] = context

    async def invalidate_subject(self, user_id):
        self.subjects.pop(user_id, None)
        self.invalidated.append(("subject", (user_id,)))


class RecordingModerationLog:
    def __init__(self):
        self.entries: list[dict[str, Any]] = []

    async def record(self, **entry: Any) -> None:
        self.entries.append(entry)
