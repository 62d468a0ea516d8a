"""
Logging configuration for the application.

Sets up stdout logging for the API, the Celery worker and scripts.
"""

import logging
import sys
from typing import Optional

from foliotrack.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Noisy third-party loggers and the level they are capped at
THIRD_PARTY_LEVELS = {
    "uvicorn": logging.INFO,
    "sqlalchemy": logging.WARNING,
    "celery": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "yfinance": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


def setup_logging(level: Optional[str] = None) -> None:
    """Configure application logging."""
    level_name = (level or settings.LOG_LEVEL).upper()

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    for name, lib_level in THIRD_PARTY_LEVELS.items():
        logging.getLogger(name).setLevel(lib_level)

    # SQL echo is routed through logging rather than the engine's own handler
    if settings.DB_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
