"""Database models for the item collection."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class TimestampMixin:
    """Mixin providing created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now, nullable=False
    )


class Item(Base, TimestampMixin):
    """One catalog item; its color variants are embedded as a JSON document.

    ``version`` is managed by the mapper: every flushed UPDATE checks the
    loaded value and bumps it, so a concurrent writer surfaces as
    :class:`sqlalchemy.orm.exc.StaleDataError`.
    """

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    catalog_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    image_ref: Mapped[str | None] = mapped_column(Text)
    color_variants: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


__all__ = ["Item"]
