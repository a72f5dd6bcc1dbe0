"""Low-stock alert derivation."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable

from .errors import StockServiceError
from .retry import RecordStore
from .schemas import ItemOut, LowStockAlert

logger = logging.getLogger(__name__)


def derive_alerts(items: Iterable[ItemOut]) -> list[LowStockAlert]:
    """One alert for every color variant holding less than its minimum."""

    return [
        LowStockAlert(
            item_id=item.id,
            color_name=variant.color_name,
            catalog_number=item.catalog_number,
            display_name=item.display_name,
            current_stock=variant.stock,
            minimum_stock=variant.min_stock,
        )
        for item in items
        for variant in item.color_variants
        if variant.stock < variant.min_stock
    ]


async def watch_low_stock(
    store: RecordStore, interval: float = 30.0
) -> AsyncIterator[list[LowStockAlert]]:
    """Poll ``store`` forever, yielding a fresh alert list each round.

    Failed polls are logged and yield an empty list, mirroring an alerts view
    that clears itself when the inventory cannot be loaded.
    """

    while True:
        try:
            items = await store.list_items()
        except StockServiceError as exc:
            logger.warning("Could not load items for low-stock alerts: %s", exc)
            yield []
        else:
            yield derive_alerts(items)
        await asyncio.sleep(interval)


__all__ = ["derive_alerts", "watch_low_stock"]
