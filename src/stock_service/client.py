"""Async HTTP client for the item REST API."""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from .errors import (
    VERSION_CONFLICT_CODE,
    ConflictError,
    NotFoundError,
    StoreRejectedError,
    TransportError,
)
from .schemas import DeleteResult, ItemCreate, ItemOut

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _error_detail(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return body["detail"]
    return body


def _is_version_conflict(detail: Any) -> bool:
    if isinstance(detail, dict):
        return detail.get("code") == VERSION_CONFLICT_CODE
    return isinstance(detail, str) and "VersionError" in detail


class ItemsClient:
    """Talks to ``/api/items`` and maps failures onto :mod:`stock_service.errors`.

    Implements :class:`stock_service.retry.RecordStore`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ItemsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if response.is_success:
            return response
        detail = _error_detail(response)
        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFoundError(f"{url} not found")
        if response.status_code == httpx.codes.CONFLICT or _is_version_conflict(detail):
            logger.info("Version conflict reported for %s %s", method, url)
            raise ConflictError(str(detail))
        logger.warning("%s %s rejected with %s: %s", method, url, response.status_code, detail)
        raise StoreRejectedError(response.status_code, detail)

    async def list_items(self) -> Sequence[ItemOut]:
        response = await self._request("GET", "/api/items")
        return [ItemOut.model_validate(record) for record in response.json()]

    async def get_item(self, item_id: str) -> ItemOut:
        response = await self._request("GET", f"/api/items/{item_id}")
        return ItemOut.model_validate(response.json())

    async def insert_item(self, payload: ItemCreate) -> ItemOut:
        response = await self._request(
            "POST", "/api/items/add", json=payload.model_dump(mode="json", by_alias=True)
        )
        return ItemOut.model_validate(response.json())

    async def replace_item(self, item_id: str, payload: ItemCreate, version: int) -> ItemOut:
        body = payload.model_dump(mode="json", by_alias=True)
        body["version"] = version
        response = await self._request("PUT", f"/api/items/update/{item_id}", json=body)
        return ItemOut.model_validate(response.json())

    async def delete_item(self, item_id: str) -> ItemOut:
        response = await self._request("DELETE", f"/api/items/{item_id}")
        return DeleteResult.model_validate(response.json()).deleted_item


__all__ = ["ItemsClient", "VERSION_CONFLICT_CODE", "DEFAULT_TIMEOUT"]
