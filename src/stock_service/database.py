"""Record store engine and session plumbing."""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import Settings, get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for the item collection's tables."""


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create an async engine for the configured record store."""

    settings = settings or get_settings()
    logger.debug("Connecting record store at %s", settings.database_url)
    return create_async_engine(settings.database_url, echo=settings.echo_sql)


def create_session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Items are serialized after commit, so loaded attributes must stay readable.
    return async_sessionmaker(bind=db_engine, expire_on_commit=False)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield one session per request from the application's own engine."""

    async with request.app.state.session_factory() as session:
        yield session


__all__ = [
    "Base",
    "create_engine",
    "create_session_factory",
    "get_session",
]
