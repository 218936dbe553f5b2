"""
Apply the versioned default-permission seed to the database.

Creates the system roles (admin, moderator, user) when missing, upserts every
seed permission by name and links it to the roles in its default_roles.
Running it again only reports unchanged entries.

Usage:
    python -m scripts.seed_default_permissions [path/to/seed.json]
"""
import asyncio
import logging
import sys

from community_authz.config import settings
from community_authz.crud.unit_of_work import SqlAlchemyUnitOfWork
from community_authz.database import AsyncSessionLocal
from community_authz.services.admin.seed import apply_permission_seed, load_permission_seed

logger = logging.getLogger("community_authz.scripts.seed")


async def seed_default_permissions(seed_path: str) -> None:
    seed = load_permission_seed(seed_path)
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUnitOfWork(session)
        try:
            outcome = await apply_permission_seed(uow, seed)
            await uow.commit()
        except Exception:
            await uow.rollback()
            raise

    print(f"Seed version {outcome.seed_version}: {outcome.total} permissions")
    print(f"  created:   {outcome.created}")
    print(f"  updated:   {outcome.updated}")
    print(f"  unchanged: {outcome.unchanged}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    path = sys.argv[1] if len(sys.argv) > 1 else settings.permission_seed_path
    asyncio.run(seed_default_permissions(path))
