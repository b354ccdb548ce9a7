"""
create_tables.py
----------------
One-shot script to create all database tables and seed the permission
catalog. Use this for quick setup. For production migrations, use Alembic
instead.

Usage:
    python create_tables.py
"""

import asyncio

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from gymdesk.core.config import settings
from gymdesk.core.logging import configure_logging, get_logger
from gymdesk.core.permissions import get_permission_catalog
from gymdesk.models import Base  # Imports all models so metadata is populated
from gymdesk.services.role_service import sync_permission_catalog

logger = get_logger(__name__)


async def create_all_tables() -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        ids = await sync_permission_catalog(session, get_permission_catalog())
        await session.commit()

    await engine.dispose()
    logger.info("Tables created", permissions=len(ids))


if __name__ == "__main__":
    configure_logging()
    asyncio.run(create_all_tables())
