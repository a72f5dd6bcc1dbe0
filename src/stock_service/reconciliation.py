"""Draft validation, stock diffing and edit reapplication."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol, Sequence

from .schemas import ColorChange, ColorVariant, ItemBase, ItemCreate

EDITABLE_FIELDS = ("catalog_number", "display_name", "price", "image_ref", "color_variants")


class _Variant(Protocol):
    color_name: str
    stock: int
    min_stock: int


class _Record(Protocol):
    color_variants: Sequence[_Variant]


@dataclass
class ColorDraft:
    """One color row of the edit form, values exactly as typed."""

    color_name: Any = ""
    stock: Any = ""
    min_stock: Any = ""
    color_image_ref: Any = None


@dataclass
class ItemDraft:
    """An item as edited by a user, before any coercion."""

    catalog_number: Any = ""
    display_name: Any = ""
    price: Any = ""
    image_ref: Any = None
    color_variants: list[ColorDraft] = field(default_factory=list)

    @classmethod
    def from_item(cls, item: ItemBase) -> "ItemDraft":
        """Pre-fill a form from a stored record, numbers rendered as text."""

        return cls(
            catalog_number=item.catalog_number,
            display_name=item.display_name,
            price=str(item.price),
            image_ref=item.image_ref or "",
            color_variants=[
                ColorDraft(
                    color_name=variant.color_name,
                    stock=str(variant.stock),
                    min_stock=str(variant.min_stock),
                    color_image_ref=variant.color_image_ref or "",
                )
                for variant in item.color_variants
            ],
        )


@dataclass
class ValidationResult:
    item: Optional[ItemCreate] = None
    errors: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.item is not None and not self.errors


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    return _text(value) or None


def _parse_price(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        try:
            parsed = float(_text(value))
        except ValueError:
            return None
    if not math.isfinite(parsed) or parsed < 0:
        return None
    return parsed


def _parse_count(value: Any) -> Optional[int]:
    """Convert stock inputs to non-negative integers or ``None``."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        parsed = int(value)
    else:
        try:
            parsed = int(_text(value))
        except ValueError:
            return None
    if parsed < 0:
        return None
    return parsed


def validate(draft: ItemDraft) -> ValidationResult:
    """Check every field of ``draft`` and collect all problems at once."""

    errors: dict[str, Any] = {}

    catalog_number = _text(draft.catalog_number)
    if not catalog_number:
        errors["catalog_number"] = "Catalog number is required"
    display_name = _text(draft.display_name)
    if not display_name:
        errors["display_name"] = "Display name is required"

    price = _parse_price(draft.price)
    if price is None:
        if _text(draft.price):
            errors["price"] = "Price must be a valid non-negative number"
        else:
            errors["price"] = "Price is required"

    variants: list[ColorVariant] = []
    variant_errors: dict[int, dict[str, str]] = {}
    seen: set[str] = set()
    if not draft.color_variants:
        errors["color_variants"] = "At least one color is required"
    for index, color in enumerate(draft.color_variants):
        row: dict[str, str] = {}
        name = _text(color.color_name)
        if not name:
            row["color_name"] = "Color is required"
        elif name.lower() in seen:
            row["color_name"] = "Color names must be unique"
        seen.add(name.lower())
        stock = _parse_count(color.stock)
        if stock is None:
            row["stock"] = "Valid stock is required"
        min_stock = _parse_count(color.min_stock)
        if min_stock is None:
            row["min_stock"] = "Valid minimum stock is required"
        if row:
            variant_errors[index] = row
            continue
        variants.append(
            ColorVariant(
                color_name=name,
                stock=stock,
                min_stock=min_stock,
                color_image_ref=_optional_text(color.color_image_ref),
            )
        )
    if variant_errors:
        errors["color_variants"] = variant_errors

    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(
        item=ItemCreate(
            catalog_number=catalog_number,
            display_name=display_name,
            price=price,
            image_ref=_optional_text(draft.image_ref),
            color_variants=variants,
        )
    )


def diff(old: Optional[_Record], new: _Record) -> list[ColorChange]:
    """Per-color stock changes from ``old`` to ``new``.

    New and changed colors come first in ``new``'s order, then colors that
    disappeared while still holding stock, in ``old``'s order. A changed
    color always reports both the stock and the minimum stock pair.
    """

    old_variants: Sequence[_Variant] = old.color_variants if old is not None else ()
    old_by_name = {variant.color_name: variant for variant in old_variants}
    new_names = {variant.color_name for variant in new.color_variants}
    changes: list[ColorChange] = []

    for variant in new.color_variants:
        previous = old_by_name.get(variant.color_name)
        if previous is None:
            changes.append(
                ColorChange(
                    color_name=variant.color_name,
                    old_stock=0,
                    new_stock=variant.stock,
                    old_min_stock=0,
                    new_min_stock=variant.min_stock,
                )
            )
        elif previous.stock != variant.stock or previous.min_stock != variant.min_stock:
            changes.append(
                ColorChange(
                    color_name=variant.color_name,
                    old_stock=previous.stock,
                    new_stock=variant.stock,
                    old_min_stock=previous.min_stock,
                    new_min_stock=variant.min_stock,
                )
            )

    for variant in old_variants:
        if variant.color_name not in new_names and variant.stock > 0:
            changes.append(
                ColorChange(color_name=variant.color_name, old_stock=variant.stock, new_stock=0)
            )
    return changes


def _field_value(record: ItemBase, name: str) -> Any:
    value = getattr(record, name)
    if name == "color_variants":
        return [variant.model_dump() for variant in value]
    return value


def touched_fields(edited: ItemBase, base: ItemBase) -> set[str]:
    """Names of the editable fields where ``edited`` departs from ``base``."""

    return {
        name for name in EDITABLE_FIELDS if _field_value(edited, name) != _field_value(base, name)
    }


def reapply(latest: ItemBase, edited: ItemBase, fields: Iterable[str]) -> ItemCreate:
    """Lay the user's edits to ``fields`` over a freshly fetched record."""

    chosen = set(fields)
    values = {
        name: getattr(edited if name in chosen else latest, name) for name in EDITABLE_FIELDS
    }
    return ItemCreate(**values)


__all__ = [
    "ColorDraft",
    "ItemDraft",
    "ValidationResult",
    "validate",
    "diff",
    "touched_fields",
    "reapply",
    "EDITABLE_FIELDS",
]
