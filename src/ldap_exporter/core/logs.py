"""Logging helpers shared by the engine and its adapters."""

import logging

ROOT_LOGGER_NAME = "ldap_exporter"


def get_logger(name: str) -> logging.Logger:
    """Return a logger inside the ldap_exporter hierarchy.

    Args:
        name: Usually the caller's ``__name__``. Names outside the package
            are nested under the package logger.

    Returns:
        A standard library logger.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def log_exception(
    message: str,
    logger: logging.Logger | None = None,
    **attributes: str | int | float | bool,
) -> None:
    """Log the exception currently being handled at ERROR level.

    Args:
        message: The log message.
        logger: Logger to use (default: the package logger).
        **attributes: Structured fields attached to the record as extras.
    """
    (logger or get_logger(ROOT_LOGGER_NAME)).error(
        message, exc_info=True, extra=dict(attributes)
    )
