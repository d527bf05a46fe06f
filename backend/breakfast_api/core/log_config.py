import logging

from breakfast_api.core.config import settings


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_handler = logging.StreamHandler()
_handler.setFormatter(logging.Formatter(LOG_FORMAT))


def configure_logging() -> None:
    """Install a single stream handler on the package logger."""
    logger = logging.getLogger("breakfast_api")
    logger.setLevel(settings.log_level.upper())
    if _handler not in logger.handlers:
        logger.addHandler(_handler)
