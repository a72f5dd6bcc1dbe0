"""Utility helpers for administrative tasks."""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from .config import get_settings
from .database import Base, create_engine
from .logging_config import configure_logging
from . import models  # noqa: F401  registers the items table on Base.metadata

logger = logging.getLogger(__name__)


async def init_database(db_engine: AsyncEngine) -> None:
    """Create database tables for the application."""

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created on %s", db_engine.url)


async def _init_configured_database() -> None:
    db_engine = create_engine(get_settings())
    try:
        await init_database(db_engine)
    finally:
        await db_engine.dispose()


def cli_init_database() -> None:
    """CLI wrapper executed from :mod:`python -m`."""

    configure_logging(get_settings().log_level)
    asyncio.run(_init_configured_database())


if __name__ == "__main__":
    cli_init_database()
