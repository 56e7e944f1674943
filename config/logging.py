"""
Logging for the Relationship Intelligence Engine.

Library modules log through the shared `logger`; batch runners frame their
output with log_banner().
"""

import logging
import sys
from typing import Optional

from config.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    name: str = "relationship_intel",
    level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
) -> logging.Logger:
    """
    Configure a named logger once.

    Args:
        name: Logger name (also the log file name under logs/)
        level: Overrides settings.LOG_LEVEL
        log_to_file: Overrides settings.LOG_TO_FILE
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.LOG_TO_FILE if log_to_file is None else log_to_file:
        log_dir = settings.project_root / "logs"
        log_dir.mkdir(exist_ok=True)
        file_handler = logging.FileHandler(log_dir / f"{name}.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_banner(title: str, width: int = 60):
    logger.info("=" * width)
    logger.info(title)
    logger.info("=" * width)


logger = setup_logging()
