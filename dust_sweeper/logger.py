import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import LoggingSettings


NOISY_LOGGERS = ("aiohttp", "httpx", "httpcore", "asyncio", "urllib3")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def setup_logging(log_settings: Optional[LoggingSettings] = None) -> logging.Logger:
    """Configure the root logger from LOG_* settings and return the app logger."""
    log_settings = log_settings or LoggingSettings()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_settings.level.value))
    root_logger.handlers.clear()

    formatter = logging.Formatter(log_settings.format, datefmt=log_settings.date_format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_settings.file_enabled:
        log_settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_settings.file_path,
            maxBytes=log_settings.file_max_bytes,
            backupCount=log_settings.file_backup_count,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("dust_sweeper")
