"""Error taxonomy shared by the HTTP client and the save workflow.

Expected failures are carried inside results (see :mod:`stock_service.retry`)
rather than raised to the caller; the store client raises them and the
controller converts them.
"""
from __future__ import annotations

from typing import Any

# Marker in a 409 detail body identifying a stale version token.
VERSION_CONFLICT_CODE = "version_conflict"


class StockServiceError(Exception):
    """Base class for every expected failure."""


class ValidationError(StockServiceError):
    """A draft failed client-side validation and was never sent."""

    def __init__(self, errors: dict[str, Any]) -> None:
        super().__init__("Draft failed validation")
        self.errors = errors


class ConflictError(StockServiceError):
    """The stored record's version no longer matches the expected one."""


class ConflictExhaustedError(StockServiceError):
    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"Gave up after {attempts} attempts due to concurrent edits; please try again."
        )
        self.attempts = attempts


class NotFoundError(StockServiceError):
    """The target record does not exist (anymore)."""


class TransportError(StockServiceError):
    """The store could not be reached or did not answer in time."""


class StoreRejectedError(StockServiceError):
    """The store answered with an error other than conflict or not-found."""

    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(f"Store rejected the request ({status_code}): {detail}")
        self.status_code = status_code
        self.detail = detail


__all__ = [
    "VERSION_CONFLICT_CODE",
    "StockServiceError",
    "ValidationError",
    "ConflictError",
    "ConflictExhaustedError",
    "NotFoundError",
    "TransportError",
    "StoreRejectedError",
]
