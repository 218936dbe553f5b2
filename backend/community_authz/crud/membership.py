import uuid

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.community import Community
from ..models.membership import CommunityMembership, MembershipPermission


class MembershipRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_community(self, community_id: uuid.UUID) -> Community | None:
        return await self.session.get(Community, community_id)

    async def get(
        self, user_id: uuid.UUID, community_id: uuid.UUID
    ) -> CommunityMembership | None:
        result = await self.session.execute(
            select(CommunityMembership).where(
                CommunityMembership.user_id == user_id,
                CommunityMembership.community_id == community_id,
            )
        )
        return result.scalar_one_or_none()

    async def add(
        self, user_id: uuid.UUID, community_id: uuid.UUID, *, status: str = "member"
    ) -> CommunityMembership:
        membership = CommunityMembership(
            user_id=user_id, community_id=community_id, status=status
        )
        self.session.add(membership)
        await self.session.flush()
        await self.session.refresh(membership)
        return membership

    async def grant_ids(self, membership_id: uuid.UUID) -> set[uuid.UUID]:
        result = await self.session.execute(
            select(MembershipPermission.permission_id).where(
                MembershipPermission.membership_id == membership_id
            )
        )
        return set(result.scalars().all())

    async def add_grant(self, membership_id: uuid.UUID, permission_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            insert(MembershipPermission)
            .values(id=uuid.uuid4(), membership_id=membership_id, permission_id=permission_id)
            .on_conflict_do_nothing(index_elements=["membership_id", "permission_id"])
        )
        return (result.rowcount or 0) > 0

    async def remove_grant(self, membership_id: uuid.UUID, permission_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            delete(MembershipPermission).where(
                MembershipPermission.membership_id == membership_id,
                MembershipPermission.permission_id == permission_id,
            )
        )
        return (result.rowcount or 0) > 0
