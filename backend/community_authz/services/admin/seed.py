"""Versioned default-permission seed and the idempotent bootstrap that applies it."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from ...domain.enums import PermissionScope
from ...domain.ports.unit_of_work import UnitOfWork
from ...schemas.seed import PermissionSeed
from ..catalog_service import sync_default_role_links

logger = logging.getLogger(__name__)

_SEEDED_FIELDS = ("description", "type", "resource", "action", "default_roles")


@dataclass
class SeedOutcome:
    seed_version: int
    total: int
    created: int = 0
    updated: int = 0
    unchanged: int = 0


def load_permission_seed(path: str | Path) -> PermissionSeed:
    """Read and validate the seed file.

    Raises:
        ValueError: If the file is missing, malformed or contains
            community-scoped entries
    """
    seed_path = Path(path)
    try:
        raw = json.loads(seed_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Permission seed file not found: {seed_path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Permission seed file is malformed: {exc}") from exc

    try:
        seed = PermissionSeed.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValueError(f"Permission seed file is invalid: {exc}") from exc

    for entry in seed.permissions:
        if entry.scope is not PermissionScope.SITE:
            raise ValueError(f"Seed permission '{entry.name}' must be site-scoped")

    logger.info(
        "Loaded permission seed version=%s permissions=%s path=%s",
        seed.version,
        len(seed.permissions),
        seed_path,
    )
    return seed


async def apply_permission_seed(
    uow: UnitOfWork, seed: PermissionSeed, actor_id: uuid.UUID | None = None
) -> SeedOutcome:
    """Diff the seed against the catalog and write only what differs.

    Does not commit; the caller owns the transaction.
    """
    outcome = SeedOutcome(seed_version=seed.version, total=len(seed.permissions))

    role_ids: dict[str, uuid.UUID] = {}
    for seed_role in seed.roles:
        role = await uow.roles.get_by_name(seed_role.name)
        if role is None:
            role = await uow.roles.add(seed_role.name, seed_role.description, is_system=True)
        elif not role.is_system:
            role.is_system = True
            role = await uow.roles.save(role)
        role_ids[seed_role.name] = role.id

    for entry in seed.permissions:
        wanted = {
            "description": entry.description,
            "type": entry.type.value,
            "resource": entry.resource,
            "action": entry.action,
            "default_roles": list(entry.default_roles),
        }
        permission = await uow.permissions.find_by_key(entry.name, entry.scope.value, None)
        previous_roles: list[str] = []
        if permission is None:
            permission = await uow.permissions.add(
                name=entry.name,
                scope=entry.scope.value,
                community_id=None,
                created_by=actor_id,
                **wanted,
            )
            outcome.created += 1
        else:
            previous_roles = list(permission.default_roles)
            changed = [
                field_name
                for field_name in _SEEDED_FIELDS
                if getattr(permission, field_name) != wanted[field_name]
            ]
            if changed:
                for field_name in changed:
                    setattr(permission, field_name, wanted[field_name])
                permission.updated_by = actor_id
                permission = await uow.permissions.save(permission)
                outcome.updated += 1
            else:
                outcome.unchanged += 1

        await sync_default_role_links(
            uow.roles, permission, previous_roles, entry.default_roles
        )
        # Re-link tags whose link was removed out of band
        linked_roles = [role_ids[tag] for tag in entry.default_roles if tag in role_ids]
        await uow.roles.link(linked_roles, [permission.id])

    return outcome
