"""
Axiom logging setup.

Log policy:
- logs/system.log: routine operations (INFO+)
- logs/error.log: failures with tracebacks (ERROR/CRITICAL)
- console: only what the user should see (WARNING+, or AXIOM_LOG_LEVEL)

RotatingFileHandler keeps log files bounded.
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.paths import get_logs_dir

MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3

ROOT_LOGGER_NAME = "axiom"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _console_level_from_env(default: int) -> int:
    raw = os.getenv("AXIOM_LOG_LEVEL", "").strip().upper()
    if not raw:
        return default
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else default


def setup_logging(
    log_level: int = logging.INFO,
    console_level: Optional[int] = None
) -> logging.Logger:
    """
    Attach file and console handlers to the "axiom" logger.

    Safe to call more than once (uvicorn reload, tests): existing handlers
    are replaced, not stacked.

    Args:
        log_level: level of logs/system.log (default INFO)
        console_level: stderr level (default AXIOM_LOG_LEVEL, else WARNING)
    """
    logs_dir = get_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # handlers do the filtering
    logger.handlers.clear()

    file_format = logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    logger.addHandler(_rotating_handler(logs_dir / "system.log", log_level, file_format))
    logger.addHandler(_rotating_handler(logs_dir / "error.log", logging.ERROR, file_format))

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level if console_level is not None else _console_level_from_env(logging.WARNING))
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Module logger under the "axiom" namespace, e.g. get_logger("app_store")."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logging.getLogger(ROOT_LOGGER_NAME)
