import logging
import uuid

logger = logging.getLogger("community_authz.modlog")


class LoggingModerationLog:
    """Moderation log that writes records to the application log.

    Used until a persistent moderation-log service is wired in.
    """

    async def record(
        self,
        *,
        community_id: uuid.UUID,
        action: str,
        moderator_id: uuid.UUID | None,
        target_type: str,
        target_id: uuid.UUID,
        details: str,
    ) -> None:
        logger.info(
            "modlog action=%s community=%s moderator=%s target=%s:%s details=%s",
            action,
            community_id,
            moderator_id,
            target_type,
            target_id,
            details,
        )
