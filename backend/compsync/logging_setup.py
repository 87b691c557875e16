"""
Logging configuration.

One rotating log file under the application home, plus a console
handler in debug mode.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from .settings.provider import get_app_home

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
LOG_FILE_NAME = "main.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 3


def configure_logging(log_dir: Optional[Path] = None, debug: bool = False) -> Path:
    """
    Install handlers on the ``compsync`` logger.

    Safe to call more than once; previously installed handlers are replaced.

    Returns:
        Path of the log file
    """
    log_dir = Path(log_dir) if log_dir else get_app_home() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    logger = logging.getLogger("compsync")
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if debug:
        console = logging.StreamHandler()
        console.setLevel(logging.DEBUG)
        console.setFormatter(formatter)
        logger.addHandler(console)

    logger.info(f"Logging to {log_file}")
    return log_file
