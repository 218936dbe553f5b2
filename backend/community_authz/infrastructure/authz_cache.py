from __future__ import annotations

import json
import logging
import uuid

from redis.exceptions import RedisError

from ..domain.authz import MembershipSnapshot, SubjectContext
from .redis import RedisClient

logger = logging.getLogger(__name__)


def membership_key(user_id: uuid.UUID, community_id: uuid.UUID) -> str:
    return f"authz:membership:{user_id}:{community_id}"


def subject_key(user_id: uuid.UUID) -> str:
    return f"authz:subject:{user_id}"


class RedisAuthorizationCache:
    """Authorization cache backed by Redis JSON strings.

    Every Redis failure is logged and reported as a miss so the caller falls
    through to the database.
    """

    def __init__(self, client: RedisClient, ttl_seconds: int) -> None:
        self._client = client
        self._ttl = ttl_seconds

    async def _read(self, key: str) -> dict | None:
        try:
            raw = await self._client.get_value(key)
        except RedisError as exc:
            logger.error("Redis operation failed operation=GET key=%s error=%s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding malformed cache entry key=%s", key)
            return None

    async def _write(self, key: str, payload: dict) -> None:
        try:
            await self._client.set_value(key, json.dumps(payload), ttl_seconds=self._ttl)
        except RedisError as exc:
            logger.error("Redis operation failed operation=SETEX key=%s error=%s", key, exc)

    async def _delete(self, key: str) -> None:
        try:
            await self._client.delete_value(key)
        except RedisError as exc:
            logger.error("Redis operation failed operation=DEL key=%s error=%s", key, exc)

    async def get_membership(
        self, user_id: uuid.UUID, community_id: uuid.UUID
    ) -> MembershipSnapshot | None:
        data = await self._read(membership_key(user_id, community_id))
        if data is None:
            return None
        try:
            return MembershipSnapshot.from_dict(data)
        except (KeyError, ValueError):
            logger.warning("Discarding malformed membership cache entry user=%s", user_id)
            return None

    async def set_membership(
        self, user_id: uuid.UUID, community_id: uuid.UUID, snapshot: MembershipSnapshot
    ) -> None:
        await self._write(membership_key(user_id, community_id), snapshot.to_dict())

    async def invalidate_membership(
        self, user_id: uuid.UUID, community_id: uuid.UUID
    ) -> None:
        await self._delete(membership_key(user_id, community_id))

    async def get_subject(self, user_id: uuid.UUID) -> SubjectContext | None:
        data = await self._read(subject_key(user_id))
        if data is None:
            return None
        try:
            return SubjectContext.from_dict(data)
        except (KeyError, ValueError):
            logger.warning("Discarding malformed subject cache entry user=%s", user_id)
            return None

    async def set_subject(self, user_id: uuid.UUID, context: SubjectContext) -> None:
        await self._write(subject_key(user_id), context.to_dict())

    async def invalidate_subject(self, user_id: uuid.UUID) -> None:
        await self._delete(subject_key(user_id))
