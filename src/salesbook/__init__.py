import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("SALESBOOK_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FILE = LOG_DIR / "salesbook.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# stderr only carries warnings and errors.
CONSOLE_LEVEL = logging.WARNING


def log_level_from_env(default: int = logging.INFO) -> int:
    """Read ``SALESBOOK_LOG_LEVEL`` (a level name such as ``DEBUG``)."""

    name = os.environ.get("SALESBOOK_LOG_LEVEL", "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def _file_handler(formatter: logging.Formatter, level: int) -> Optional[logging.Handler]:
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    except OSError as exc:
        print(f"Warning: salesbook log file '{LOG_FILE}' is unavailable: {exc}", file=sys.stderr)
        return None
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _configure_logging() -> logging.Logger:
    """Attach the rotating file and stderr handlers to the package logger once."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    level = log_level_from_env()
    logger.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = _file_handler(formatter, level)
    if file_handler is not None:
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(max(level, CONSOLE_LEVEL))
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging()
log.debug("salesbook logging ready (file=%s)", LOG_FILE)
