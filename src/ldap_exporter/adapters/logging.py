"""Python logging setup for the exporter process.

Records carry structured fields through ``extra=`` (for example the
``source`` of a failed scrape); the formatter appends them to the message
as ``key=value`` pairs.
"""

import logging
import sys
from typing import TextIO

from ldap_exporter.core.logs import ROOT_LOGGER_NAME

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ExtraFieldsFormatter(logging.Formatter):
    """Formatter that appends extra record attributes as key=value pairs.

    Example:
        ```python
        handler = logging.StreamHandler()
        handler.setFormatter(ExtraFieldsFormatter())
        logger.error("scrape failed", extra={"source": "users"})
        # ... ERROR ldap_exporter: scrape failed source=users
        ```
    """

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extras = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RECORD_FIELDS
            and not key.startswith("_")
            and isinstance(value, (str, int, float, bool))
        ]
        if not extras:
            return message
        # keep tracebacks last
        head, sep, tail = message.partition("\n")
        return f"{head} {' '.join(extras)}{sep}{tail}"


def configure_logging(
    level: str | int = "INFO",
    stream: TextIO | None = None,
    fmt: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """Attach a stream handler to the package logger.

    Calling this again replaces the handler installed by a previous call.

    Args:
        level: Logging level name or number.
        stream: Output stream (default: stderr).
        fmt: logging format string.

    Returns:
        The package logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_ldap_exporter", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(ExtraFieldsFormatter(fmt))
    handler._ldap_exporter = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
