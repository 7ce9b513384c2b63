import logging
import sys
from logging.handlers import RotatingFileHandler

from . import settings

CONSOLE_FORMAT = logging.Formatter("%(message)s")
VERBOSE_FORMAT = logging.Formatter("%(levelname)-7s %(name)s: %(message)s")
FILE_FORMAT = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def setup_logger(name: str = "shrinkwatch", verbose: bool = False) -> logging.Logger:
    """
    Configures the package logger for the CLI.
    - Console: bare progress messages at LOG_LEVEL, or DEBUG with level and
      module names when `verbose` is set.
    - File: LOG_DIR/app.log, rotated at 5 MB, always at DEBUG.
    Calling it again only re-applies the console verbosity.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    console_handler = next((h for h in logger.handlers if h.get_name() == "console"), None)
    if console_handler is None:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.set_name("console")
        logger.addHandler(console_handler)

        settings.LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.LOG_DIR / "app.log", maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        file_handler.set_name("file")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(FILE_FORMAT)
        logger.addHandler(file_handler)

    console_handler.setLevel(logging.DEBUG if verbose else settings.LOG_LEVEL)
    console_handler.setFormatter(VERBOSE_FORMAT if verbose else CONSOLE_FORMAT)
    return logger
