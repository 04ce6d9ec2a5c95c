# FILE: salesdesk/logging_config.py
# DESCRIPTION: Shared logging setup used by every salesdesk module.

import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _resolve_level(level):
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def configure_logging(name, logfile=None, level=None):
    """
    Return a logger with a console handler and, when LOG_DIR is writable,
    a rotating file handler. Calling it again for the same name does not
    add duplicate handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    if getattr(logger, "_salesdesk_configured", False):
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if logfile:
        log_dir = os.getenv("LOG_DIR", "logs")
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, logfile), maxBytes=5 * 1024 * 1024, backupCount=5
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError:
            logger.warning("Could not open log file %s in %s; logging to console only", logfile, log_dir)

    logger._salesdesk_configured = True
    return logger
