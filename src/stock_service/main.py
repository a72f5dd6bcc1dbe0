"""ASGI entrypoint for running the service."""
from __future__ import annotations

import uvicorn

from .config import get_settings
from .logging_config import configure_logging


def run() -> None:
    """Convenience wrapper used by ``python -m stock_service.main``."""

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "stock_service.api:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
