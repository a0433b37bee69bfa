#!/usr/bin/env python3
"""Create the catalog tables and the upload directory."""

import asyncio

from catalog.core.config import settings
from catalog.core.logging import logger, setup_logging
from catalog.db.session import close_db, init_db as create_tables


async def init_db():
    """Create all database tables."""
    await create_tables()
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Catalog storage ready", upload_dir=str(settings.upload_dir))
    await close_db()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_db())
