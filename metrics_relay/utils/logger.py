"""JSON log output for the relay process."""

import logging
import sys
from typing import IO, Optional

from pythonjsonlogger import jsonlogger

LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s %(message)s'


def setup_logger(
    name: str = "metrics_relay",
    level: str = "INFO",
    stream: Optional[IO[str]] = None
) -> logging.Logger:
    """
    Return a logger writing one JSON object per record.

    Calling it again for the same name replaces the handler, so the relay
    and its workflow can both ask for a logger without doubling output.
    ``extra`` fields passed at the call site land as top-level JSON keys.

    Args:
        name: Logger name
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream, stdout when None
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(jsonlogger.JsonFormatter(
        LOG_FORMAT,
        rename_fields={"levelname": "level", "name": "logger"},
        timestamp=True
    ))
    logger.handlers = [handler]
    logger.propagate = False

    return logger
