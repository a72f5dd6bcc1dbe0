"""Business logic for interacting with the database."""
from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .models import Item, _now

logger = logging.getLogger(__name__)


class VersionConflict(Exception):
    """Raised when an update carries a version other than the stored one."""

    def __init__(self, item_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"VersionError: No matching version {expected} for item {item_id} (current {actual})"
        )
        self.item_id = item_id
        self.expected = expected
        self.actual = actual


def _variant_documents(data: schemas.ItemBase) -> list[dict]:
    return [variant.model_dump() for variant in data.color_variants]


async def create_item(session: AsyncSession, data: schemas.ItemCreate) -> Item:
    item = Item(
        catalog_number=data.catalog_number,
        display_name=data.display_name,
        price=data.price,
        image_ref=data.image_ref,
        color_variants=_variant_documents(data),
    )
    session.add(item)
    await session.flush()
    return item


async def list_items(session: AsyncSession) -> Sequence[Item]:
    stmt = select(Item).order_by(Item.created_at, Item.catalog_number)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_item(session: AsyncSession, item_id: str) -> Item:
    stmt = select(Item).where(Item.id == item_id)
    result = await session.execute(stmt)
    item = result.scalar_one_or_none()
    if item is None:
        raise NoResultFound(f"Item {item_id} not found")
    return item


async def update_item(session: AsyncSession, item: Item, data: schemas.ItemUpdate) -> Item:
    if data.version != item.version:
        logger.info(
            "Rejecting update of item %s: expected version %s, stored %s",
            item.id,
            data.version,
            item.version,
        )
        raise VersionConflict(item.id, data.version, item.version)
    item.catalog_number = data.catalog_number
    item.display_name = data.display_name
    item.price = data.price
    item.image_ref = data.image_ref
    item.color_variants = _variant_documents(data)
    # Every accepted write bumps the version, identical values included.
    item.updated_at = _now()
    await session.flush()
    return item


async def delete_item(session: AsyncSession, item: Item) -> None:
    await session.delete(item)
    await session.flush()


__all__ = [name for name in globals() if not name.startswith("_")]
