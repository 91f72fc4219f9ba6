"""
Logging setup for the course generation service.
"""
import logging

from coursegen.core.config import Settings


LOGGER_NAME = "coursegen"
_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> logging.Logger:
    """
    Attach one stream handler to the package logger.

    Safe to call more than once; an existing handler is reused and only the
    level is updated.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(str(settings.log_level or "INFO").upper())

    if not any(getattr(handler, "_coursegen", False) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._coursegen = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    logger.propagate = False
    return logger
