from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from stock_service.api import create_app
from stock_service.client import ItemsClient
from stock_service.config import Settings
from stock_service.ledger import HistoryLedger
from stock_service.management import init_database


def item_payload(catalog_number: str = "SR-001", **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "catalogNumber": catalog_number,
        "displayName": "Kanjivaram Silk",
        "price": 4500.0,
        "imageRef": "https://example.com/sr-001.jpg",
        "colorVariants": [
            {"colorName": "Red", "stock": 5, "minStock": 2},
            {"colorName": "Blue", "stock": 1, "minStock": 3},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def make_payload():
    return item_payload


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    db_path = tmp_path / "test.db"
    return Settings(
        database_url=f"sqlite+aiosqlite:///{db_path}",
        environment="test",
        access_control_allow_origin="*",
        app_name="Test Stock Service",
    )


@pytest.fixture()
async def app(settings: Settings) -> AsyncIterator[FastAPI]:
    app = create_app(settings)
    await init_database(app.state.engine)

    yield app

    await app.state.engine.dispose()


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture()
async def items_client(app: FastAPI) -> AsyncIterator[ItemsClient]:
    async with ItemsClient("http://test", transport=ASGITransport(app=app)) as items_client:
        yield items_client


@pytest.fixture()
def ledger(tmp_path: Path) -> Iterator[HistoryLedger]:
    with HistoryLedger(tmp_path / "history.jsonl") as ledger:
        yield ledger
