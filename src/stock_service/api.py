"""FastAPI router configuration."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from . import crud, schemas
from .alerts import derive_alerts
from .config import Settings, get_settings
from .database import create_engine, create_session_factory, get_session
from .errors import VERSION_CONFLICT_CODE
from .logging_config import configure_logging
from .management import init_database

logger = logging.getLogger(__name__)

router = APIRouter()


def provide_settings() -> Settings:
    """Dependency returning the active :class:`Settings` instance."""

    return get_settings()


def _store_error(action: str, exc: Exception) -> HTTPException:
    logger.error("Error %s: %s", action, exc)
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": f"Failed {action}", "details": str(exc)},
    )


def _not_found(exc: NoResultFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": str(exc)})


def _conflict(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"error": message, "code": VERSION_CONFLICT_CODE},
    )


@router.get("/", tags=["system"])
async def welcome(settings: Settings = Depends(provide_settings)) -> dict[str, str]:
    return {"message": f"Welcome to {settings.app_name}"}


@router.get("/health", response_model=schemas.HealthStatus, tags=["system"])
async def health_check(settings: Settings = Depends(provide_settings)) -> schemas.HealthStatus:
    return schemas.HealthStatus(environment=settings.environment)


@router.get("/api/items", response_model=list[schemas.ItemOut], tags=["items"])
async def list_items(session: AsyncSession = Depends(get_session)) -> Sequence[schemas.ItemOut]:
    try:
        items = await crud.list_items(session)
    except SQLAlchemyError as exc:
        raise _store_error("to fetch items", exc) from exc
    return [schemas.ItemOut.model_validate(item) for item in items]


@router.get("/api/items/{item_id}", response_model=schemas.ItemOut, tags=["items"])
async def get_item(item_id: str, session: AsyncSession = Depends(get_session)) -> schemas.ItemOut:
    try:
        item = await crud.get_item(session, item_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    except SQLAlchemyError as exc:
        raise _store_error("to fetch item", exc) from exc
    return schemas.ItemOut.model_validate(item)


@router.post(
    "/api/items/add",
    response_model=schemas.ItemOut,
    status_code=status.HTTP_201_CREATED,
    tags=["items"],
)
async def create_item(
    payload: schemas.ItemCreate, session: AsyncSession = Depends(get_session)
) -> schemas.ItemOut:
    try:
        item = await crud.create_item(session, payload)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise _store_error("to add item", exc) from exc
    logger.info("Created item %s (%s)", item.id, item.catalog_number)
    return schemas.ItemOut.model_validate(item)


@router.put("/api/items/update/{item_id}", response_model=schemas.ItemOut, tags=["items"])
async def update_item(
    item_id: str,
    payload: schemas.ItemUpdate,
    session: AsyncSession = Depends(get_session),
) -> schemas.ItemOut:
    try:
        item = await crud.get_item(session, item_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    try:
        item = await crud.update_item(session, item, payload)
        await session.commit()
    except crud.VersionConflict as exc:
        raise _conflict(str(exc)) from exc
    except StaleDataError as exc:
        await session.rollback()
        raise _conflict(f"VersionError: {exc}") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise _store_error("to update item", exc) from exc
    await session.refresh(item)
    logger.info("Updated item %s to version %s", item.id, item.version)
    return schemas.ItemOut.model_validate(item)


@router.delete("/api/items/{item_id}", response_model=schemas.DeleteResult, tags=["items"])
async def delete_item(
    item_id: str, session: AsyncSession = Depends(get_session)
) -> schemas.DeleteResult:
    try:
        item = await crud.get_item(session, item_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    deleted = schemas.ItemOut.model_validate(item)
    try:
        await crud.delete_item(session, item)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise _store_error("to delete item", exc) from exc
    logger.info("Deleted item %s", item_id)
    return schemas.DeleteResult(message="Item deleted successfully", deleted_item=deleted)


@router.get("/api/alerts/low-stock", response_model=list[schemas.LowStockAlert], tags=["alerts"])
async def list_low_stock(
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.LowStockAlert]:
    try:
        items = await crud.list_items(session)
    except SQLAlchemyError as exc:
        raise _store_error("to fetch items", exc) from exc
    return derive_alerts(schemas.ItemOut.model_validate(item) for item in items)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "error": "Missing or invalid fields",
                "details": jsonable_encoder(exc.errors()),
            }
        },
    )


async def _body_too_large(request: Request, limit: int) -> bool:
    length = request.headers.get("content-length")
    if length is not None and length.isdigit():
        return int(length) > limit
    if request.method not in {"POST", "PUT"}:
        return False
    # Chunked uploads carry no length header; the buffered body is reused downstream.
    return len(await request.body()) > limit


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    await init_database(app.state.engine)
    yield
    await app.state.engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title=settings.app_name, lifespan=_lifespan)
    app.state.engine = create_engine(settings)
    app.state.session_factory = create_session_factory(app.state.engine)
    app.dependency_overrides[provide_settings] = lambda: settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        if await _body_too_large(request, settings.max_body_bytes):
            return JSONResponse(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                content={"detail": {"error": "Request body too large"}},
            )
        return await call_next(request)

    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.include_router(router)
    return app


app = create_app()


__all__ = ["app", "create_app"]
