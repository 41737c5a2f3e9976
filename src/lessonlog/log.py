"""
Logger setup for the lessonlog package.

Console output always; a rotating file when a path is configured.
Password values are masked before any handler sees them.
"""

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOGGER_NAME = "lessonlog"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d %(message)s"


class PasswordMaskFilter(logging.Filter):
    """Mask ``password=...`` style fragments in log messages."""

    _pattern = re.compile(r'(password|passwd|pwd)["\']?\s*[:=]\s*["\']?([^"\'\s,]+)', re.IGNORECASE)

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._pattern.sub(r"\1: ********", str(record.msg))
        return True


def setup_logger(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Handlers are attached once per process.
    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    mask = PasswordMaskFilter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(mask)
    logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.addFilter(mask)
        logger.addHandler(file_handler)

    return logger
