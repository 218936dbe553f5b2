"""Decision order of the authorization engine, exercised against in-memory stores."""
import uuid
from datetime import timedelta

import pytest

from authz_fakes import (
    NOW,
    CommunityRecord,
    FakeUnitOfWork,
    MembershipRecord,
    PermissionRecord,
    RoleRecord,
    UserRecord,
    fixed_clock,
)
from community_authz.errors import NotFoundError, ValidationError
from community_authz.services.authorization import (
    AuthorizationEngine,
    MembershipResolver,
    SubjectResolver,
    build_ownership_registry,
)


def make_engine(uow: FakeUnitOfWork) -> AuthorizationEngine:
    return AuthorizationEngine(
        uow.permissions,
        MembershipResolver(uow.memberships, clock=fixed_clock),
        SubjectResolver(uow.roles, uow.users),
        ownership=build_ownership_registry(uow.users),
        clock=fixed_clock,
    )


@pytest.fixture
def community(uow) -> CommunityRecord:
    return uow.memberships.put_community(CommunityRecord(name="python"))


@pytest.fixture
def user(uow) -> UserRecord:
    return uow.users.put(UserRecord(username="alice"))


@pytest.fixture
def user_role(uow) -> RoleRecord:
    return uow.roles.put(RoleRecord(name="user", is_system=True))


def community_permission(uow, community, action, tags, **fields) -> PermissionRecord:
    return uow.permissions.put(
        PermissionRecord(
            name=f"{action}-{'-'.join(tags) or 'none'}",
            action=action,
            scope="subreddit",
            community_id=community.id,
            default_roles=list(tags),
            type="custom",
            **fields,
        )
    )


def join(uow, user, community, status="member", grants=(), **fields) -> MembershipRecord:
    return uow.memberships.put(
        MembershipRecord(user_id=user.id, community_id=community.id, status=status, **fields),
        grants,
    )


class TestAdminBypass:
    @pytest.mark.anyio
    async def test_admin_allowed_without_any_permission(self, uow, community):
        admin = uow.users.put(UserRecord(username="root", role="admin"))
        engine = make_engine(uow)

        assert await engine.authorize(admin, "post", "delete_any") is True
        assert await engine.authorize(admin, "media", "purge", community.id) is True

    @pytest.mark.anyio
    async def test_banned_admin_is_denied_in_that_community(self, uow, community):
        admin = uow.users.put(UserRecord(username="root", role="admin"))
        join(uow, admin, community, status="banned")
        engine = make_engine(uow)

        assert await engine.authorize(admin, "post", "create", community.id) is False
        assert await engine.authorize(admin, "post", "create") is True


class TestBanSupremacy:
    @pytest.mark.anyio
    async def test_ban_beats_custom_grant_and_community_role(self, uow, user, community):
        grant = community_permission(uow, community, "pin", [])
        community_permission(uow, community, "create", ["member", "visitor"])
        helper = uow.roles.put(RoleRecord(name="helper"))
        await uow.roles.link([helper.id], [grant.id])
        await uow.roles.add_assignment(user.id, helper.id, community_id=community.id)
        join(uow, user, community, status="banned", grants=[grant.id])
        engine = make_engine(uow)

        assert await engine.authorize(user, "post", "pin", community.id) is False
        assert await engine.authorize(user, "post", "create", community.id) is False

    @pytest.mark.anyio
    async def test_site_permission_still_applies_outside_banned_community(
        self, uow, user, user_role, community
    ):
        permission = uow.permissions.put(
            PermissionRecord(
                name="Gönderi Oluşturma",
                resource="post",
                action="create",
                scope="site",
                default_roles=["user", "moderator", "admin"],
            )
        )
        await uow.roles.link([user_role.id], [permission.id])
        engine = make_engine(uow)

        assert await engine.authorize(user, "post", "create") is True

        join(uow, user, community, status="banned")
        assert await engine.authorize(user, "post", "create", community.id) is False
        assert await engine.authorize(user, "post", "create") is True

    @pytest.mark.anyio
    async def test_lapsed_ban_resolves_as_member(self, uow, user, community):
        community_permission(uow, community, "create", ["member"])
        join(
            uow,
            user,
            community,
            status="banned",
            ban_expires_at=NOW - timedelta(minutes=1),
        )
        engine = make_engine(uow)

        assert await engine.authorize(user, "post", "create", community.id) is True

    @pytest.mark.anyio
    async def test_ban_expiring_later_still_denies(self, uow, user, community):
        community_permission(uow, community, "create", ["member"])
        join(
            uow,
            user,
            community,
            status="banned",
            ban_expires_at=NOW + timedelta(days=1),
        )
        engine = make_engine(uow)

        assert await engine.authorize(user, "post", "create", community.id) is False


class TestSiteGrants:
    @pytest.mark.anyio
    async def test_global_role_link_allows(self, uow, user, user_role):
        permission = uow.permissions.put(PermissionRecord(name="comment", resource="comment", action="create"))
        await uow.roles.link([user_role.id], [permission.id])

        assert await make_engine(uow).authorize(user, "comment", "create") is True

    @pytest.mark.anyio
    async def test_inactive_permission_never_matches(self, uow, user, user_role):
        permission = uow.permissions.put(
            PermissionRecord(name="comment", resource="comment", action="create", is_active=False)
        )
        await uow.roles.link([user_role.id], [permission.id])

        assert await make_engine(uow).authorize(user, "comment", "create") is False

    @pytest.mark.anyio
    async def test_site_assignment_respects_expiry(self, uow, user):
        permission = uow.permissions.put(PermissionRecord(name="ban", resource="user", action="ban"))
        staff = uow.roles.put(RoleRecord(name="staff"))
        await uow.roles.link([staff.id], [permission.id])
        assignment = await uow.roles.add_assignment(
            user.id, staff.id, expires_at=NOW + timedelta(hours=1)
        )
        engine = make_engine(uow)

        assert await engine.authorize(user, "user", "ban") is True

        assignment.expires_at = NOW - timedelta(seconds=1)
        assert await engine.authorize(user, "user", "ban") is False

    @pytest.mark.anyio
    async def test_direct_user_grant_allows(self, uow, user):
        permission = uow.permissions.put(PermissionRecord(name="upload", resource="media", action="upload"))
        await uow.users.add_custom_permission(user.id, permission.id)

        assert await make_engine(uow).authorize(user, "media", "upload") is True

    @pytest.mark.anyio
    async def test_unlinked_site_permission_denies(self, uow, user, user_role):
        uow.permissions.put(
            PermissionRecord(name="upload", resource="media", action="upload", default_roles=["user"])
        )

        assert await make_engine(uow).authorize(user, "media", "upload") is False


class TestCommunityTiers:
    @pytest.mark.anyio
    async def test_moderator_gets_moderator_defaults(self, uow, user, community):
        community_permission(uow, community, "remove", ["moderator"])
        join(uow, user, community, status="moderator")

        assert await make_engine(uow).authorize(user, "post", "remove", community.id) is True

    @pytest.mark.anyio
    async def test_member_does_not_get_moderator_defaults(self, uow, user, community):
        community_permission(uow, community, "remove", ["moderator"])
        join(uow, user, community)

        assert await make_engine(uow).authorize(user, "post", "remove", community.id) is False

    @pytest.mark.anyio
    async def test_custom_grant_allows_member(self, uow, user, community):
        permission = community_permission(uow, community, "pin", [])
        join(uow, user, community, grants=[permission.id])

        assert await make_engine(uow).authorize(user, "post", "pin", community.id) is True

    @pytest.mark.anyio
    async def test_custom_grant_for_other_community_does_not_match(self, uow, user, community):
        other = uow.memberships.put_community(CommunityRecord(name="rust"))
        permission = community_permission(uow, other, "pin", [])
        join(uow, user, community, grants=[permission.id])

        assert await make_engine(uow).authorize(user, "post", "pin", community.id) is False

    @pytest.mark.anyio
    async def test_community_role_assignment_allows_until_expiry(self, uow, user, community):
        permission = community_permission(uow, community, "flair", [])
        curator = uow.roles.put(RoleRecord(name="curator"))
        await uow.roles.link([curator.id], [permission.id])
        assignment = await uow.roles.add_assignment(
            user.id, curator.id, community_id=community.id, expires_at=NOW + timedelta(days=1)
        )
        join(uow, user, community)
        engine = make_engine(uow)

        assert await engine.authorize(user, "post", "flair", community.id) is True

        assignment.expires_at = NOW - timedelta(days=1)
        assert await engine.authorize(user, "post", "flair", community.id) is False

    @pytest.mark.anyio
    async def test_member_gets_member_defaults(self, uow, user, community):
        community_permission(uow, community, "create", ["member"])
        join(uow, user, community)

        assert await make_engine(uow).authorize(user, "post", "create", community.id) is True

    @pytest.mark.anyio
    async def test_member_does_not_get_visitor_only_permissions(self, uow, user, community):
        community_permission(uow, community, "preview", ["visitor"])
        join(uow, user, community)

        assert await make_engine(uow).authorize(user, "post", "preview", community.id) is False

    @pytest.mark.anyio
    async def test_non_member_gets_visitor_defaults_only(self, uow, user, community):
        community_permission(uow, community, "view", ["visitor"])
        community_permission(uow, community, "create", ["member"])
        engine = make_engine(uow)

        assert await engine.authorize(user, "post", "view", community.id) is True
        assert await engine.authorize(user, "post", "create", community.id) is False

    @pytest.mark.anyio
    async def test_pending_member_is_treated_as_visitor(self, uow, user, community):
        community_permission(uow, community, "view", ["visitor"])
        community_permission(uow, community, "create", ["member"])
        pin = community_permission(uow, community, "pin", [])
        join(uow, user, community, status="pending", grants=[pin.id])
        engine = make_engine(uow)

        assert await engine.authorize(user, "post", "view", community.id) is True
        assert await engine.authorize(user, "post", "create", community.id) is False
        assert await engine.authorize(user, "post", "pin", community.id) is False

    @pytest.mark.anyio
    async def test_inactive_community_permission_denies(self, uow, user, community):
        community_permission(uow, community, "create", ["member"], is_active=False)
        join(uow, user, community)

        assert await make_engine(uow).authorize(user, "post", "create", community.id) is False


class TestAnonymous:
    @pytest.mark.anyio
    async def test_anonymous_sees_visitor_tagged_site_permissions(self, uow):
        uow.permissions.put(
            PermissionRecord(name="read", resource="post", action="read", default_roles=["visitor"])
        )
        uow.permissions.put(
            PermissionRecord(name="create", resource="post", action="create", default_roles=["user"])
        )
        engine = make_engine(uow)

        assert await engine.authorize(None, "post", "read") is True
        assert await engine.authorize(None, "post", "create") is False

    @pytest.mark.anyio
    async def test_anonymous_gets_community_visitor_tier(self, uow, community):
        community_permission(uow, community, "view", ["visitor"])
        community_permission(uow, community, "create", ["member"])
        engine = make_engine(uow)

        assert await engine.authorize(None, "post", "view", community.id) is True
        assert await engine.authorize(None, "post", "create", community.id) is False


class TestOwnerOrAny:
    @pytest.mark.anyio
    async def test_owner_is_checked_against_own_action(self, uow, user, user_role):
        own = uow.permissions.put(PermissionRecord(name="own", resource="user", action="update_own"))
        await uow.roles.link([user_role.id], [own.id])
        other = uow.users.put(UserRecord(username="bob"))
        engine = make_engine(uow)

        assert await engine.authorize_owner_or_any(user, "user", user.id, "update_own", "update_any") is True
        assert await engine.authorize_owner_or_any(user, "user", other.id, "update_own", "update_any") is False

    @pytest.mark.anyio
    async def test_unknown_resource_tag_is_rejected(self, uow, user):
        with pytest.raises(ValidationError):
            await make_engine(uow).authorize_owner_or_any(
                user, "post", uuid.uuid4(), "delete_own", "delete_any"
            )

    @pytest.mark.anyio
    async def test_missing_content_is_not_found(self, uow, user):
        with pytest.raises(NotFoundError):
            await make_engine(uow).authorize_owner_or_any(
                user, "user", uuid.uuid4(), "update_own", "update_any"
            )


class TestCheckPermissions:
    @pytest.mark.anyio
    async def test_require_all_and_any(self, uow, user, user_role):
        read = uow.permissions.put(PermissionRecord(name="read", resource="post", action="read"))
        await uow.roles.link([user_role.id], [read.id])
        engine = make_engine(uow)
        checks = [("post", "read"), ("post", "delete_any")]

        assert await engine.check_permissions(user, checks) is False
        assert await engine.check_permissions(user, checks, require_all=False) is True
        assert await engine.check_permissions(user, [("post", "read")]) is True

    @pytest.mark.anyio
    async def test_empty_checks_rejected(self, uow, user):
        with pytest.raises(ValidationError):
            await make_engine(uow).check_permissions(user, [])

    @pytest.mark.anyio
    async def test_blank_resource_rejected(self, uow, user):
        with pytest.raises(ValidationError):
            await make_engine(uow).authorize(user, "", "create")
