from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest

from stock_service.errors import (
    ConflictError,
    ConflictExhaustedError,
    NotFoundError,
    StockServiceError,
    StoreRejectedError,
    TransportError,
    ValidationError,
)
from stock_service.reconciliation import ColorDraft, ItemDraft
from stock_service.retry import (
    ConflictRetryController,
    SaveEvent,
    SaveState,
    transition,
)
from stock_service.schemas import ColorChange, ColorVariant, ItemCreate, ItemOut


def _stored(version: int = 1, price: float = 4500.0, red_stock: int = 5) -> ItemOut:
    now = datetime.now(timezone.utc)
    return ItemOut(
        id="item-1",
        catalog_number="SR-001",
        display_name="Kanjivaram Silk",
        price=price,
        color_variants=[ColorVariant(color_name="Red", stock=red_stock, min_stock=2)],
        version=version,
        created_at=now,
        updated_at=now,
    )


class ScriptedStore:
    """In-memory store that loses the first ``conflicts`` writes to another writer."""

    def __init__(
        self,
        record: ItemOut,
        *,
        conflicts: int = 0,
        write_error: Optional[StockServiceError] = None,
        fetch_error: Optional[StockServiceError] = None,
    ) -> None:
        self.record = record
        self.conflicts = conflicts
        self.write_error = write_error
        self.fetch_error = fetch_error
        self.writes: list[tuple[ItemCreate, int]] = []
        self.fetches = 0

    async def list_items(self):
        return [self.record]

    async def get_item(self, item_id: str) -> ItemOut:
        self.fetches += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.record

    async def insert_item(self, payload: ItemCreate) -> ItemOut:
        raise NotImplementedError

    async def delete_item(self, item_id: str) -> ItemOut:
        raise NotImplementedError

    async def replace_item(self, item_id: str, payload: ItemCreate, version: int) -> ItemOut:
        self.writes.append((payload, version))
        if self.write_error is not None:
            raise self.write_error
        if self.conflicts:
            self.conflicts -= 1
            # another writer bumps the price first
            self.record = self.record.model_copy(
                update={"version": self.record.version + 1, "price": self.record.price + 100}
            )
            raise ConflictError("VersionError")
        if version != self.record.version:
            raise ConflictError("VersionError")
        self.record = ItemOut(
            id=item_id,
            version=version + 1,
            created_at=self.record.created_at,
            updated_at=datetime.now(timezone.utc),
            **payload.model_dump(),
        )
        return self.record


def _stock_draft(stock: str = "3") -> ItemDraft:
    return ItemDraft(
        catalog_number="SR-001",
        display_name="Kanjivaram Silk",
        price="4500",
        color_variants=[ColorDraft(color_name="Red", stock=stock, min_stock="2")],
    )


@pytest.mark.parametrize(
    "state, event, expected",
    [
        (SaveState.IDLE, SaveEvent.SUBMIT, SaveState.SUBMITTING),
        (SaveState.IDLE, SaveEvent.INVALID, SaveState.FAILED),
        (SaveState.SUBMITTING, SaveEvent.WRITE_OK, SaveState.SUCCEEDED),
        (SaveState.SUBMITTING, SaveEvent.CONFLICT, SaveState.CONFLICTED),
        (SaveState.SUBMITTING, SaveEvent.ERROR, SaveState.FAILED),
        (SaveState.CONFLICTED, SaveEvent.RETRY, SaveState.SUBMITTING),
        (SaveState.CONFLICTED, SaveEvent.EXHAUSTED, SaveState.FAILED),
    ],
)
def test_transition_table(state, event, expected) -> None:
    assert transition(state, event) is expected


@pytest.mark.parametrize(
    "state, event",
    [
        (SaveState.SUCCEEDED, SaveEvent.SUBMIT),
        (SaveState.FAILED, SaveEvent.RETRY),
        (SaveState.IDLE, SaveEvent.WRITE_OK),
        (SaveState.SUBMITTING, SaveEvent.RETRY),
    ],
)
def test_transition_rejects_illegal_events(state, event) -> None:
    with pytest.raises(ValueError):
        transition(state, event)


async def test_save_succeeds_after_two_conflicts() -> None:
    base = _stored()
    store = ScriptedStore(base, conflicts=2)

    outcome = await ConflictRetryController(store).save(_stock_draft(), base, max_attempts=3)

    assert outcome.ok
    assert outcome.state is SaveState.SUCCEEDED
    assert outcome.attempts == 3
    assert len(store.writes) == 3
    assert [version for _, version in store.writes] == [1, 2, 3]
    assert outcome.item.version == 4
    assert outcome.changes == [
        ColorChange(color_name="Red", old_stock=5, new_stock=3, old_min_stock=2, new_min_stock=2)
    ]


async def test_save_gives_up_when_attempts_run_out() -> None:
    base = _stored()
    store = ScriptedStore(base, conflicts=2)

    outcome = await ConflictRetryController(store).save(_stock_draft(), base, max_attempts=2)

    assert not outcome.ok
    assert outcome.state is SaveState.FAILED
    assert isinstance(outcome.error, ConflictExhaustedError)
    assert outcome.error.attempts == 2
    assert len(store.writes) == 2
    assert outcome.item is None


@pytest.mark.parametrize("conflicts", range(0, 6))
@pytest.mark.parametrize("max_attempts", [1, 2, 3, 4])
async def test_save_never_exceeds_attempt_ceiling(conflicts: int, max_attempts: int) -> None:
    base = _stored()
    store = ScriptedStore(base, conflicts=conflicts)

    outcome = await ConflictRetryController(store, max_attempts=max_attempts).save(
        _stock_draft(), base
    )

    assert len(store.writes) <= max_attempts
    assert outcome.ok is (conflicts < max_attempts)


async def test_retry_carries_forward_untouched_fields() -> None:
    base = _stored()
    store = ScriptedStore(base, conflicts=1)

    outcome = await ConflictRetryController(store).save(_stock_draft("7"), base)

    assert outcome.ok
    first_payload, _ = store.writes[0]
    retry_payload, retry_version = store.writes[1]
    assert first_payload.price == 4500.0
    assert retry_payload.price == 4600.0
    assert retry_version == 2
    assert outcome.item.price == 4600.0
    assert outcome.item.color_variants[0].stock == 7


async def test_invalid_draft_never_reaches_store() -> None:
    base = _stored()
    store = ScriptedStore(base)

    outcome = await ConflictRetryController(store).save(_stock_draft("-4"), base)

    assert outcome.state is SaveState.FAILED
    assert isinstance(outcome.error, ValidationError)
    assert outcome.error.errors == {"color_variants": {0: {"stock": "Valid stock is required"}}}
    assert outcome.attempts == 0
    assert store.writes == []


@pytest.mark.parametrize(
    "error",
    [NotFoundError("gone"), TransportError("down"), StoreRejectedError(400, "rejected")],
)
async def test_other_store_errors_are_not_retried(error) -> None:
    base = _stored()
    store = ScriptedStore(base, write_error=error)

    outcome = await ConflictRetryController(store, max_attempts=5).save(_stock_draft(), base)

    assert outcome.state is SaveState.FAILED
    assert outcome.error is error
    assert len(store.writes) == 1
    assert store.fetches == 0


async def test_failed_refetch_ends_the_save() -> None:
    base = _stored()
    store = ScriptedStore(base, conflicts=1, fetch_error=NotFoundError("deleted"))

    outcome = await ConflictRetryController(store).save(_stock_draft(), base)

    assert outcome.state is SaveState.FAILED
    assert isinstance(outcome.error, NotFoundError)
    assert len(store.writes) == 1


async def test_unchanged_draft_saves_with_empty_diff() -> None:
    base = _stored()
    store = ScriptedStore(base)

    outcome = await ConflictRetryController(store).save(ItemDraft.from_item(base), base)

    assert outcome.ok
    assert outcome.changes == []
    assert outcome.item.version == 2


async def test_retry_delay_waits_between_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    import stock_service.retry as retry_module

    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr(retry_module.asyncio, "sleep", fake_sleep)
    base = _stored()
    store = ScriptedStore(base, conflicts=2)

    outcome = await ConflictRetryController(store, retry_delay=0.5).save(_stock_draft(), base)

    assert outcome.ok
    assert delays == [0.5, 0.5]


def test_controller_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError):
        ConflictRetryController(ScriptedStore(_stored()), max_attempts=0)
