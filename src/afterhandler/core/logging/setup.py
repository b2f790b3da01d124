from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .json_formatter import JSONFormatter

_LOGGER_NAME = "afterhandler"
_CONFIGURED_ATTR = "_afterhandler_json_logging"
# httpx logs every request at INFO; send() already logs failures with context.
_NOISY_LOGGERS = ("httpx", "httpcore")


def _env_level(name: str, default: str) -> int:
    return getattr(logging, os.getenv(name, default).strip().upper(), logging.INFO)


def _is_configured(handler: logging.Handler) -> bool:
    return bool(getattr(handler, _CONFIGURED_ATTR, False))


def _attach(logger: logging.Logger, handler: logging.Handler) -> None:
    handler.setFormatter(JSONFormatter())
    setattr(handler, _CONFIGURED_ATTR, True)
    logger.addHandler(handler)


def log_file_path(state_dir: Path, log_name: str = "afterhandler") -> Path:
    """One rotating file per process kind, e.g. ``<state_dir>/logs/worker.log``."""
    log_dir = Path(os.getenv("AFTERHANDLER_LOG_DIR") or (Path(state_dir) / "logs"))
    return log_dir / f"{log_name}.log"


def configure_logging(state_dir: Path, log_name: str = "afterhandler") -> logging.Logger:
    """Attach JSON handlers to the ``afterhandler`` logger. Safe to call repeatedly."""
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(_env_level("AFTERHANDLER_LOG_LEVEL", "INFO"))
    logger.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(_env_level("AFTERHANDLER_HTTP_LOG_LEVEL", "WARNING"))

    if not any(_is_configured(handler) and not isinstance(handler, RotatingFileHandler) for handler in logger.handlers):
        _attach(logger, logging.StreamHandler(stream=sys.stdout))

    if os.getenv("AFTERHANDLER_LOG_TO_FILE", "on").strip().casefold() != "on":
        return logger

    log_path = log_file_path(state_dir, log_name)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    resolved = log_path.resolve()
    if any(
        isinstance(handler, RotatingFileHandler) and _is_configured(handler) and Path(handler.baseFilename) == resolved
        for handler in logger.handlers
    ):
        return logger

    _attach(
        logger,
        RotatingFileHandler(
            filename=log_path,
            maxBytes=int(os.getenv("AFTERHANDLER_LOG_MAX_BYTES", "5000000")),
            backupCount=int(os.getenv("AFTERHANDLER_LOG_BACKUP_COUNT", "5")),
            encoding="utf-8",
        ),
    )
    return logger
