"""Logging initialization."""

from __future__ import annotations

import logging
import os

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
LOG_FORMAT = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
)


def configure_logging() -> None:
    # requests/urllib3 log every artwork lookup at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)


__all__ = ["configure_logging"]
