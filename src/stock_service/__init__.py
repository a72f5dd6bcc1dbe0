"""Stock service package."""
from __future__ import annotations

from .reconciliation import ColorDraft, ItemDraft, diff, validate
from .retry import ConflictRetryController, SaveOutcome, SaveState

__all__ = [
    "create_app",
    "ColorDraft",
    "ItemDraft",
    "ConflictRetryController",
    "SaveOutcome",
    "SaveState",
    "diff",
    "validate",
]


def create_app(*args, **kwargs):
    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)
