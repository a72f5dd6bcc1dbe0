"""Optimistic-concurrency save loop for item updates.

A save walks a small state machine::

    idle -> submitting -> succeeded
                       -> failed
                       -> conflicted -> submitting (refetch + reapply)
                                     -> failed (attempts exhausted)

:func:`transition` is the pure step function; :class:`ConflictRetryController`
drives it against a :class:`RecordStore`.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, Sequence

from .errors import (
    ConflictError,
    ConflictExhaustedError,
    StockServiceError,
    ValidationError,
)
from .reconciliation import ItemDraft, diff, reapply, touched_fields, validate
from .schemas import ColorChange, ItemCreate, ItemOut

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class RecordStore(Protocol):
    """What the save workflow needs from the item collection."""

    async def list_items(self) -> Sequence[ItemOut]: ...

    async def get_item(self, item_id: str) -> ItemOut: ...

    async def insert_item(self, payload: ItemCreate) -> ItemOut: ...

    async def replace_item(self, item_id: str, payload: ItemCreate, version: int) -> ItemOut: ...

    async def delete_item(self, item_id: str) -> ItemOut: ...


class SaveState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    CONFLICTED = "conflicted"
    FAILED = "failed"


class SaveEvent(str, Enum):
    SUBMIT = "submit"
    INVALID = "invalid"
    WRITE_OK = "write_ok"
    CONFLICT = "conflict"
    ERROR = "error"
    RETRY = "retry"
    EXHAUSTED = "exhausted"


_TRANSITIONS: dict[tuple[SaveState, SaveEvent], SaveState] = {
    (SaveState.IDLE, SaveEvent.SUBMIT): SaveState.SUBMITTING,
    (SaveState.IDLE, SaveEvent.INVALID): SaveState.FAILED,
    (SaveState.SUBMITTING, SaveEvent.WRITE_OK): SaveState.SUCCEEDED,
    (SaveState.SUBMITTING, SaveEvent.CONFLICT): SaveState.CONFLICTED,
    (SaveState.SUBMITTING, SaveEvent.ERROR): SaveState.FAILED,
    (SaveState.CONFLICTED, SaveEvent.RETRY): SaveState.SUBMITTING,
    (SaveState.CONFLICTED, SaveEvent.EXHAUSTED): SaveState.FAILED,
    (SaveState.CONFLICTED, SaveEvent.ERROR): SaveState.FAILED,
}

TERMINAL_STATES = frozenset({SaveState.SUCCEEDED, SaveState.FAILED})


def transition(state: SaveState, event: SaveEvent) -> SaveState:
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise ValueError(f"Event {event.value!r} is not valid in state {state.value!r}") from None


@dataclass
class SaveOutcome:
    """Result of one logical save: a saved record or exactly one error."""

    state: SaveState
    item: Optional[ItemOut] = None
    changes: list[ColorChange] = field(default_factory=list)
    error: Optional[StockServiceError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.state is SaveState.SUCCEEDED


class ConflictRetryController:
    """Submit an edited item, absorbing version conflicts up to a ceiling."""

    def __init__(
        self,
        store: RecordStore,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = 0.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    async def save(
        self,
        draft: ItemDraft,
        base: ItemOut,
        max_attempts: Optional[int] = None,
    ) -> SaveOutcome:
        """Write ``draft`` over ``base``, the record the user started from.

        ``base.version`` is the version the edit was made against. Only
        version conflicts are retried; every other store error ends the save
        immediately.
        """

        limit = self.max_attempts if max_attempts is None else max_attempts
        if limit < 1:
            raise ValueError("max_attempts must be at least 1")

        state = SaveState.IDLE
        result = validate(draft)
        if not result.ok:
            state = transition(state, SaveEvent.INVALID)
            return SaveOutcome(state, error=ValidationError(result.errors))

        edited = result.item
        edits = touched_fields(edited, base)
        payload: ItemCreate = edited
        version = base.version
        attempts = 0
        state = transition(state, SaveEvent.SUBMIT)

        while True:
            attempts += 1
            try:
                saved = await self.store.replace_item(base.id, payload, version)
            except ConflictError:
                state = transition(state, SaveEvent.CONFLICT)
                if attempts >= limit:
                    logger.warning(
                        "Giving up on item %s after %d conflicting attempts", base.id, attempts
                    )
                    state = transition(state, SaveEvent.EXHAUSTED)
                    return SaveOutcome(
                        state, error=ConflictExhaustedError(attempts), attempts=attempts
                    )
                logger.info(
                    "Version conflict on item %s, retrying (%d/%d)", base.id, attempts + 1, limit
                )
                try:
                    latest = await self.store.get_item(base.id)
                except StockServiceError as exc:
                    state = transition(state, SaveEvent.ERROR)
                    return SaveOutcome(state, error=exc, attempts=attempts)
                payload = reapply(latest, edited, edits)
                version = latest.version
                if self.retry_delay:
                    await asyncio.sleep(self.retry_delay)
                state = transition(state, SaveEvent.RETRY)
                continue
            except StockServiceError as exc:
                logger.warning("Saving item %s failed: %s", base.id, exc)
                state = transition(state, SaveEvent.ERROR)
                return SaveOutcome(state, error=exc, attempts=attempts)

            state = transition(state, SaveEvent.WRITE_OK)
            return SaveOutcome(state, item=saved, changes=diff(base, saved), attempts=attempts)


__all__ = [
    "RecordStore",
    "SaveState",
    "SaveEvent",
    "SaveOutcome",
    "ConflictRetryController",
    "transition",
    "TERMINAL_STATES",
    "DEFAULT_MAX_ATTEMPTS",
]
