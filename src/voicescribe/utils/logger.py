import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from platformdirs import user_log_path

ROOT_LOGGER_NAME = "voicescribe"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 5


def get_log_dir() -> Path:
    log_dir = user_log_path(ROOT_LOGGER_NAME, appauthor=False)
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


_logger_instance: Optional[logging.Logger] = None


def _normalize_name(name: str) -> str:
    # Tests import the package as src.voicescribe; keep one logger tree.
    if name.startswith(f"src.{ROOT_LOGGER_NAME}."):
        return name.replace("src.", "", 1)
    if name == f"src.{ROOT_LOGGER_NAME}":
        return ROOT_LOGGER_NAME
    return name


def _configure_root_logger() -> logging.Logger:
    from ..core.settings.config import LOG_TO_CONSOLE, LOG_TO_FILE, get_log_level

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if root_logger.handlers:
        return root_logger

    level = get_log_level()
    root_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if LOG_TO_FILE:
        file_handler = RotatingFileHandler(
            get_log_dir() / "voicescribe.log",
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if LOG_TO_CONSOLE:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.propagate = False
    return root_logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    global _logger_instance

    name = _normalize_name(name)

    if _logger_instance is None:
        _logger_instance = _configure_root_logger()

    if name == ROOT_LOGGER_NAME:
        return _logger_instance

    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Shutdown logging and close all file handlers to release file locks."""
    global _logger_instance
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    _logger_instance = None
