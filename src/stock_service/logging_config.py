"""Process-wide logging setup."""
from __future__ import annotations

import logging


def configure_logging(level: str = "INFO") -> None:
    """Install a basic handler unless the host application already did."""

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    logging.getLogger("stock_service").setLevel(level.upper())


__all__ = ["configure_logging"]
