"""Logging setup.

Configures the `canvass` logger hierarchy once: a file handler writing to
`{LOG_PATH}/{filename}` plus console output. Modules keep using
`logging.getLogger(__name__)`.
"""
import os
import sys
from logging import FileHandler, Formatter, StreamHandler, getLogger

from canvass.app.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings, filename: str = "logs.log"):
    logger = getLogger("canvass")

    if logger.handlers:
        return logger

    logger.setLevel(settings.LOG_LEVEL.upper())
    logger.propagate = False

    os.makedirs(settings.LOG_PATH, exist_ok=True)
    log_path = os.path.join(settings.LOG_PATH, filename)

    file_handler = FileHandler(log_path, mode="a", encoding="utf-8", delay=True)
    file_handler.setFormatter(Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)

    console = StreamHandler(sys.stderr)
    console.setFormatter(Formatter(LOG_FORMAT))
    logger.addHandler(console)

    return logger
