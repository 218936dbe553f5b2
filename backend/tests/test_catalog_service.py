import uuid
from unittest.mock import AsyncMock

import pytest

from authz_fakes import CommunityRecord, PermissionRecord, RoleRecord
from community_authz.domain.enums import PermissionScope, PermissionType
from community_authz.domain.ports.permission import PermissionQuery
from community_authz.errors import ConflictError, NotFoundError, ValidationError
from community_authz.schemas.permission import (
    CommunityPermissionUpsert,
    PermissionCreate,
    PermissionUpdate,
)
from community_authz.services.catalog_service import PermissionCatalog, group_by_tier


@pytest.fixture
def catalog(uow, modlog) -> PermissionCatalog:
    return PermissionCatalog(uow, moderation_log=modlog, default_page_size=2, max_page_size=3)


@pytest.fixture
def roles(uow) -> dict[str, RoleRecord]:
    return {
        name: uow.roles.put(RoleRecord(name=name, is_system=True))
        for name in ("admin", "moderator", "user")
    }


def site_create(**overrides) -> PermissionCreate:
    fields = {
        "name": "Gönderi Oluşturma",
        "type": PermissionType.CORE,
        "scope": PermissionScope.SITE,
        "resource": "post",
        "action": "create",
        "default_roles": ["user", "moderator"],
    }
    fields.update(overrides)
    return PermissionCreate(**fields)


class TestCreate:
    @pytest.mark.anyio
    async def test_create_links_existing_default_roles(self, uow, catalog, roles):
        permission = await catalog.create(site_create(default_roles=["user", "visitor"]))

        assert await uow.roles.permission_ids(roles["user"].id) == {permission.id}
        assert await uow.roles.permission_ids(roles["moderator"].id) == set()
        assert uow.commits == 1

    @pytest.mark.anyio
    async def test_duplicate_name_in_scope_conflicts(self, uow, catalog):
        await catalog.create(site_create())

        with pytest.raises(ConflictError):
            await catalog.create(site_create())
        assert uow.rollbacks == 1
        assert len(uow.permissions.items) == 1

    @pytest.mark.anyio
    async def test_site_scope_with_community_is_rejected(self, uow, catalog):
        with pytest.raises(ValidationError):
            await catalog.create(site_create(community_id=uuid.uuid4()))
        assert uow.permissions.items == {}

    @pytest.mark.anyio
    async def test_community_scope_requires_community(self, catalog):
        with pytest.raises(ValidationError):
            await catalog.create(site_create(scope=PermissionScope.SUBREDDIT))

    @pytest.mark.anyio
    async def test_community_must_exist(self, catalog):
        with pytest.raises(NotFoundError):
            await catalog.create(
                site_create(scope=PermissionScope.SUBREDDIT, community_id=uuid.uuid4())
            )

    @pytest.mark.anyio
    async def test_same_name_allowed_in_different_communities(self, uow, catalog):
        first = uow.memberships.put_community(CommunityRecord(name="a"))
        second = uow.memberships.put_community(CommunityRecord(name="b"))

        for community in (first, second):
            await catalog.create(
                site_create(scope=PermissionScope.SUBREDDIT, community_id=community.id)
            )
        assert len(uow.permissions.items) == 2

    @pytest.mark.anyio
    async def test_community_tags_link_no_role(self, uow, catalog, roles):
        community = uow.memberships.put_community(CommunityRecord(name="python"))

        await catalog.create(
            site_create(
                scope=PermissionScope.SUBREDDIT,
                community_id=community.id,
                default_roles=["moderator", "admin"],
            )
        )

        assert uow.roles.links == set()


class TestUpdateAndDelete:
    @pytest.mark.anyio
    async def test_update_resyncs_role_links(self, uow, catalog, roles):
        permission = await catalog.create(site_create(default_roles=["user"]))

        await catalog.update(
            permission.id, PermissionUpdate(default_roles=["moderator"]), actor_id=uuid.uuid4()
        )

        assert await uow.roles.permission_ids(roles["user"].id) == set()
        assert await uow.roles.permission_ids(roles["moderator"].id) == {permission.id}
        assert permission.updated_by is not None

    @pytest.mark.anyio
    async def test_rename_to_existing_name_conflicts(self, catalog):
        await catalog.create(site_create(name="first"))
        second = await catalog.create(site_create(name="second"))

        with pytest.raises(ConflictError):
            await catalog.update(second.id, PermissionUpdate(name="first"))

    @pytest.mark.anyio
    async def test_null_for_required_field_rejected(self, catalog):
        permission = await catalog.create(site_create())

        with pytest.raises(ValidationError):
            await catalog.update(permission.id, PermissionUpdate(action=None))

    @pytest.mark.anyio
    async def test_delete_leaves_no_role_reference(self, uow, catalog, roles):
        permission = await catalog.create(site_create(default_roles=["user", "moderator", "admin"]))

        await catalog.delete(permission.id)

        assert permission.id not in uow.permissions.items
        assert all(pid != permission.id for _, pid in uow.roles.links)

    @pytest.mark.anyio
    async def test_delete_missing_permission_not_found(self, uow, catalog):
        with pytest.raises(NotFoundError):
            await catalog.delete(uuid.uuid4())
        assert uow.rollbacks == 1

    @pytest.mark.anyio
    async def test_failed_delete_keeps_role_links(self, uow, catalog, roles):
        permission = await catalog.create(site_create(default_roles=["user", "moderator"]))
        links_before = set(uow.roles.links)
        uow.permissions.delete_many = AsyncMock(side_effect=RuntimeError("connection lost"))

        with pytest.raises(RuntimeError):
            await catalog.delete(permission.id)

        assert uow.roles.links == links_before
        assert permission.id in uow.permissions.items
        assert uow.rollbacks == 1

    @pytest.mark.anyio
    async def test_community_tag_change_links_no_role(self, uow, catalog, roles):
        community = uow.memberships.put_community(CommunityRecord(name="python"))
        permission = await catalog.create(
            site_create(scope=PermissionScope.SUBREDDIT, community_id=community.id)
        )

        await catalog.update(permission.id, PermissionUpdate(default_roles=["moderator"]))

        assert permission.default_roles == ["moderator"]
        assert uow.roles.links == set()


class TestListing:
    @pytest.mark.anyio
    async def test_pagination_and_page_size_cap(self, uow, catalog):
        for index in range(5):
            uow.permissions.put(PermissionRecord(name=f"perm-{index}", action="read"))

        first = await catalog.list()
        assert (first.total, first.limit, first.total_pages) == (5, 2, 3)
        assert [p.name for p in first.items] == ["perm-0", "perm-1"]

        capped = await catalog.list(page=2, limit=50)
        assert capped.limit == 3
        assert [p.name for p in capped.items] == ["perm-3", "perm-4"]

    @pytest.mark.anyio
    async def test_filters_by_search_text(self, uow, catalog):
        uow.permissions.put(PermissionRecord(name="Yorum Silme", action="delete", resource="comment"))
        uow.permissions.put(PermissionRecord(name="Gönderi Okuma", action="read"))

        listing = await catalog.list(PermissionQuery(search="yorum"))

        assert [p.name for p in listing.items] == ["Yorum Silme"]

    @pytest.mark.anyio
    async def test_invalid_page_rejected(self, catalog):
        with pytest.raises(ValidationError):
            await catalog.list(page=0)

    @pytest.mark.anyio
    async def test_community_listing_groups_by_tier(self, uow, catalog):
        community = uow.memberships.put_community(CommunityRecord(name="python"))
        for name, tags in (("mod", ["moderator"]), ("both", ["member", "visitor"]), ("none", [])):
            uow.permissions.put(
                PermissionRecord(
                    name=name,
                    action=name,
                    scope="subreddit",
                    community_id=community.id,
                    default_roles=tags,
                )
            )

        listing = await catalog.list_for_community(community.id)

        assert len(listing.all) == 3
        assert [p.name for p in listing.grouped["moderator"]] == ["mod"]
        assert [p.name for p in listing.grouped["member"]] == ["both"]
        assert [p.name for p in listing.grouped["visitor"]] == ["both"]
        assert [p.name for p in listing.grouped["other"]] == ["none"]

    @pytest.mark.anyio
    async def test_unknown_community_listing_not_found(self, catalog):
        with pytest.raises(NotFoundError):
            await catalog.list_for_community(uuid.uuid4())

    @pytest.mark.anyio
    async def test_resource_overview_groups_by_role_tag(self, uow, catalog):
        uow.permissions.put(PermissionRecord(name="a", action="create", default_roles=["user", "admin"]))
        uow.permissions.put(PermissionRecord(name="b", action="delete_any", default_roles=["admin"]))

        overview = await catalog.resource_overview("post")

        assert [p.action for p in overview.permissions] == ["create", "delete_any"]
        assert [p.name for p in overview.role_permissions["admin"]] == ["a", "b"]
        assert [p.name for p in overview.role_permissions["user"]] == ["a"]

    @pytest.mark.anyio
    async def test_resource_overview_rejects_unknown_resource(self, catalog):
        with pytest.raises(ValidationError):
            await catalog.resource_overview("anime")


class TestCommunityUpsert:
    @pytest.mark.anyio
    async def test_upsert_creates_then_updates(self, uow, catalog, modlog):
        community = uow.memberships.put_community(CommunityRecord(name="python"))
        actor = uuid.uuid4()
        payload = CommunityPermissionUpsert(
            name="Pin", resource="post", action="pin", default_roles=["moderator"]
        )

        permission, created = await catalog.upsert_community_permission(community.id, payload, actor)
        assert created is True
        assert permission.type == "custom"
        assert permission.scope == "subreddit"

        payload = CommunityPermissionUpsert(
            name="Pin", resource="post", action="pin", default_roles=["member"], is_active=False
        )
        updated, created = await catalog.upsert_community_permission(community.id, payload, actor)
        assert created is False
        assert updated.id == permission.id
        assert updated.default_roles == ["member"]
        assert updated.is_active is False

        assert [entry["action"] for entry in modlog.entries] == [
            "permission_created",
            "permission_updated",
        ]
        assert all(entry["community_id"] == community.id for entry in modlog.entries)

    @pytest.mark.anyio
    async def test_upsert_unknown_community_writes_nothing(self, uow, catalog, modlog):
        payload = CommunityPermissionUpsert(
            name="Pin", resource="post", action="pin", default_roles=[]
        )

        with pytest.raises(NotFoundError):
            await catalog.upsert_community_permission(uuid.uuid4(), payload)
        assert uow.permissions.items == {}
        assert modlog.entries == []


def test_group_by_tier_puts_untagged_in_other():
    grouped = group_by_tier([PermissionRecord(name="x", action="x", default_roles=["custom"])])

    assert grouped["other"][0].name == "x"
    assert grouped["moderator"] == grouped["member"] == grouped["visitor"] == []
