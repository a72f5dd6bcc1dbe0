"""Local change-history ledger persisted as JSON lines."""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import Iterable, List, Optional

from pydantic import ValidationError as SchemaError

from .schemas import HistoryEntry

logger = logging.getLogger(__name__)


class LedgerClosedError(RuntimeError):
    """Raised when a ledger handle is used outside its open/close window."""


def _now_millis() -> int:
    return int(time.time() * 1000)


def _next_identifier(base: str, existing: Iterable[str]) -> str:
    taken = set(existing)
    if base not in taken:
        return base
    index = 2
    while f"{base}-{index}" in taken:
        index += 1
    return f"{base}-{index}"


@dataclass
class HistoryLedger:
    """Append-only log of change entries kept on this machine only.

    The handle must be opened before use and closed afterwards, either
    explicitly or as a context manager. Entries are never rewritten; the only
    mutation besides appending is removing an entry by id.
    """

    path: Path
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    _open: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> "HistoryLedger":
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)
            self._open = True
        logger.debug("History ledger opened at %s", self.path)
        return self

    def close(self) -> None:
        with self._lock:
            self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "HistoryLedger":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------
    def new_entry_id(self) -> str:
        """Millisecond timestamp, suffixed when an entry already uses it."""

        with self._lock:
            self._ensure_open()
            base = str(_now_millis())
            return _next_identifier(base, (entry.id for entry in self._read_locked()))

    def append(self, entry: HistoryEntry) -> HistoryEntry:
        with self._lock:
            self._ensure_open()
            if any(existing.id == entry.id for existing in self._read_locked()):
                raise ValueError(f"History entry '{entry.id}' already exists")
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(entry.model_dump_json(by_alias=True) + "\n")
        return entry

    def remove(self, entry_id: str) -> None:
        with self._lock:
            self._ensure_open()
            entries = self._read_locked()
            remaining = [entry for entry in entries if entry.id != entry_id]
            if len(remaining) == len(entries):
                raise KeyError(f"History entry '{entry_id}' not found")
            temp_path = self.path.with_suffix(".tmp")
            temp_path.write_text(
                "".join(entry.model_dump_json(by_alias=True) + "\n" for entry in remaining),
                encoding="utf-8",
            )
            temp_path.replace(self.path)

    def list_all(self) -> List[HistoryEntry]:
        """Every entry, most recent first."""

        with self._lock:
            self._ensure_open()
            entries = self._read_locked()
        entries.sort(key=lambda entry: entry.timestamp, reverse=True)
        return entries

    def _ensure_open(self) -> None:
        if not self._open:
            raise LedgerClosedError(f"History ledger at {self.path} is not open")

    def _read_locked(self) -> List[HistoryEntry]:
        if not self.path.exists():
            return []
        entries: List[HistoryEntry] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                payload = json.loads(line)
                entries.append(HistoryEntry.model_validate(payload))
            except (json.JSONDecodeError, SchemaError):
                logger.warning("Skipping unreadable history line in %s", self.path)
                continue
        return entries


def filter_history(entries: Iterable[HistoryEntry], term: Optional[str] = None) -> List[HistoryEntry]:
    """Stock-change entries whose item name or catalog number matches ``term``."""

    needle = (term or "").strip().lower()
    return [
        entry
        for entry in entries
        if entry.changes
        and (
            needle in entry.snapshot.display_name.lower()
            or needle in entry.snapshot.catalog_number.lower()
        )
    ]


__all__ = ["HistoryLedger", "LedgerClosedError", "filter_history"]
