"""Logging setup.

Modules log through ``logging.getLogger(__name__)``; this only wires the
root handlers once per process, from Settings.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from ..config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILENAME = "lifeseed.log"


def configure_logging(settings: "Settings", log_file: Path | None = None) -> logging.Logger:
    """Configure the ``lifeseed`` logger hierarchy.

    Args:
        settings: Settings providing log_level and the runtime context
        log_file: Optional explicit log file. If None, the runtime context's
                  log directory is used when settings.log_to_file is true.

    Returns:
        The configured ``lifeseed`` package logger
    """
    logger = logging.getLogger("lifeseed")
    logger.setLevel(str(settings.log_level).upper())

    if log_file is None and settings.log_to_file:
        # None when the context logs to stdout only
        log_file = settings.context.get_log_path(LOG_FILENAME)

    formatter = logging.Formatter(LOG_FORMAT)

    # Reconfiguring replaces our own handlers instead of stacking them
    for handler in list(logger.handlers):
        if getattr(handler, "_lifeseed", False):
            logger.removeHandler(handler)
            handler.close()

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    stream._lifeseed = True
    logger.addHandler(stream)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler._lifeseed = True
        logger.addHandler(file_handler)

    return logger
