"""Inventory workflow: saves through the store and records local history."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .alerts import derive_alerts
from .errors import StockServiceError, ValidationError
from .ledger import HistoryLedger
from .reconciliation import ItemDraft, diff, validate
from .retry import ConflictRetryController, RecordStore, SaveOutcome, SaveState
from .schemas import ColorChange, HistoryAction, HistoryEntry, HistorySnapshot, ItemOut, LowStockAlert

logger = logging.getLogger(__name__)


def search_items(items: Iterable[ItemOut], term: Optional[str] = None) -> List[ItemOut]:
    """Case-insensitive match on display name or catalog number."""

    needle = (term or "").strip().lower()
    if not needle:
        return list(items)
    return [
        item
        for item in items
        if needle in item.display_name.lower() or needle in item.catalog_number.lower()
    ]


class InventoryWorkflow:
    """Add, update and delete items, logging each success to the ledger."""

    def __init__(
        self,
        store: RecordStore,
        ledger: HistoryLedger,
        controller: Optional[ConflictRetryController] = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.controller = controller or ConflictRetryController(store)

    async def add_item(self, draft: ItemDraft) -> SaveOutcome:
        result = validate(draft)
        if not result.ok:
            return SaveOutcome(SaveState.FAILED, error=ValidationError(result.errors))
        try:
            saved = await self.store.insert_item(result.item)
        except StockServiceError as exc:
            logger.warning("Adding item %s failed: %s", result.item.catalog_number, exc)
            return SaveOutcome(SaveState.FAILED, error=exc, attempts=1)

        changes = [
            change for change in diff(None, saved) if change.new_stock or change.new_min_stock
        ]
        self._record("add", saved)
        if changes:
            self._record("stock_update", saved, changes)
        return SaveOutcome(SaveState.SUCCEEDED, item=saved, changes=changes, attempts=1)

    async def update_item(
        self, draft: ItemDraft, base: ItemOut, max_attempts: Optional[int] = None
    ) -> SaveOutcome:
        outcome = await self.controller.save(draft, base, max_attempts)
        if outcome.ok:
            if outcome.changes:
                self._record("stock_update", outcome.item, outcome.changes)
            else:
                self._record("update", outcome.item)
        return outcome

    async def delete_item(self, item: ItemOut) -> SaveOutcome:
        try:
            deleted = await self.store.delete_item(item.id)
        except StockServiceError as exc:
            logger.warning("Deleting item %s failed: %s", item.id, exc)
            return SaveOutcome(SaveState.FAILED, error=exc, attempts=1)
        self._record("delete", deleted)
        return SaveOutcome(SaveState.SUCCEEDED, item=deleted, attempts=1)

    async def low_stock_alerts(self) -> List[LowStockAlert]:
        return derive_alerts(await self.store.list_items())

    def _record(
        self,
        action: HistoryAction,
        item: ItemOut,
        changes: Optional[List[ColorChange]] = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            id=self.ledger.new_entry_id(),
            item_id=item.id,
            action=action,
            changes=changes if action == "stock_update" else None,
            snapshot=HistorySnapshot(
                item_id=item.id,
                catalog_number=item.catalog_number,
                display_name=item.display_name,
            ),
            timestamp=datetime.now(timezone.utc),
        )
        return self.ledger.append(entry)


__all__ = ["InventoryWorkflow", "search_items"]
