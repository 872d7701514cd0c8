"""
Logging configuration for the weather station dashboard.

Every process (API server, prewarm and forecast scripts) calls
``setup_logging`` once at import time; modules then obtain their logger
through ``get_logger(__name__)``.
"""

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from stationdash.config import settings

DEBUG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every request or statement at INFO
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging():
    """
    Configure the root logger.

    Writes to stdout plus two rotating files under ``LOG_DIR``:
    ``stationdash.log`` (INFO and above) and ``stationdash_errors.log``
    (ERROR and above). Calling it again replaces the previous handlers.
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL)
    root.handlers.clear()

    formatter = logging.Formatter(
        fmt=DEBUG_FORMAT if settings.DEBUG else PLAIN_FORMAT,
        datefmt=DATE_FORMAT,
    )

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    console.setFormatter(formatter)
    root.addHandler(console)

    root.addHandler(_rotating_handler(log_dir / "stationdash.log", logging.INFO, formatter))
    root.addHandler(_rotating_handler(log_dir / "stationdash_errors.log", logging.ERROR, formatter))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(
        f"{settings.SERVER_NAME} logging initialized "
        f"(level={settings.LOG_LEVEL}, debug={settings.DEBUG}, dir={log_dir})"
    )
    return root


def get_logger(name: str) -> logging.Logger:
    """Return the module logger for ``name`` (usually ``__name__``)."""
    return logging.getLogger(name)
