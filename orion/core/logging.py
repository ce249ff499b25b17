"""Logging setup for the Orion backend service.

Every record carries ``request_id``: the API request id, ``bg:<loop>`` for
background loops, or ``system`` outside of both.
"""
import logging
import sys

from orion.core.config import AppConfig, Settings
from orion.core.request_context import get_request_id

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d] - request_id=%(request_id)s - %(message)s"
)

# aiohttp logs every connection reset while the printer reboots.
QUIET_LOGGERS = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.client": logging.WARNING,
    "PIL": logging.INFO,
}

_factory_installed = False


def _install_record_factory() -> None:
    global _factory_installed
    if _factory_installed:
        return
    base_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs) -> logging.LogRecord:
        record = base_factory(*args, **kwargs)
        record.request_id = get_request_id() or "system"
        return record

    logging.setLogRecordFactory(record_factory)
    _factory_installed = True


def configure_logging(
    settings: Settings | AppConfig, *,
    logger_name: str = "orion",
) -> logging.Logger:
    """Configure the root logger and return the application logger.

    The app factory runs once per ASGI app, so repeated calls only adjust
    levels; the handler and the record factory are installed once.
    """

    log_level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    _install_record_factory()
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(log_level)

    for name, floor in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(floor, log_level))

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    logger.debug("Logging configured with level %s", logging.getLevelName(log_level))
    return logger
