"""Pydantic schemas shared by the API, the HTTP client and the local ledger."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

HistoryAction = Literal["add", "update", "delete", "stock_update"]


class CamelModel(BaseModel):
    """Base model speaking camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ColorVariant(CamelModel):
    color_name: str = Field(..., min_length=1)
    stock: int = Field(..., ge=0)
    min_stock: int = Field(..., ge=0, description="Reorder threshold.")
    color_image_ref: str | None = None


class ItemBase(CamelModel):
    catalog_number: str = Field(..., min_length=1, description="Unique catalog identifier.")
    display_name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0, allow_inf_nan=False)
    image_ref: str | None = Field(None, description="URL or data URL of the item image.")
    color_variants: list[ColorVariant] = Field(..., min_length=1)


class ItemCreate(ItemBase):
    pass


class ItemUpdate(ItemBase):
    version: int = Field(..., description="Version the client last read.")


class ItemOut(ItemBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    version: int
    created_at: datetime
    updated_at: datetime


class DeleteResult(CamelModel):
    message: str
    deleted_item: ItemOut


class ColorChange(CamelModel):
    color_name: str
    old_stock: int
    new_stock: int
    old_min_stock: int | None = None
    new_min_stock: int | None = None


class LowStockAlert(CamelModel):
    item_id: str
    color_name: str
    catalog_number: str
    display_name: str
    current_stock: int
    minimum_stock: int


class HistorySnapshot(CamelModel):
    item_id: str
    catalog_number: str
    display_name: str


class HistoryEntry(CamelModel):
    id: str
    item_id: str
    action: HistoryAction
    changes: list[ColorChange] | None = None
    snapshot: HistorySnapshot
    timestamp: datetime


class HealthStatus(BaseModel):
    status: Literal["ok"] = "ok"
    environment: str


__all__ = [
    "ColorVariant",
    "ItemCreate",
    "ItemUpdate",
    "ItemOut",
    "DeleteResult",
    "ColorChange",
    "LowStockAlert",
    "HistoryAction",
    "HistorySnapshot",
    "HistoryEntry",
    "HealthStatus",
]
