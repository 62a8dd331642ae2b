"""
Helpers for turning transport exceptions into log lines and error payloads.
"""

import logging


def _safe_str(obj) -> str:
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception: BaseException) -> str:
    """
    Format an exception for the ``{"error": ...}`` payload.

    Transport errors frequently carry an empty message (``httpx.ReadTimeout()``
    for instance), in which case the exception type name is used. Exception
    groups list their members.

    Args:
        exception: The exception to format

    Returns:
        A non-empty string describing the exception
    """
    if exception is None:
        return "None"

    message = _safe_str(exception).strip() or type(exception).__name__

    sub_exceptions = _sub_exceptions(exception)
    if sub_exceptions:
        parts = [
            f"{type(sub).__name__}: {format_exception_message(sub)}"
            for sub in sub_exceptions
        ]
        return f"{message} (Sub-exceptions: {'; '.join(parts)})"
    return message


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its type and, for exception groups, each member.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Forward]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    sub_exceptions = _sub_exceptions(exception)
    if not sub_exceptions:
        logger.log(
            level,
            f"{prefix} {type(exception).__name__}: {format_exception_message(exception)}",
            exc_info=exception,
        )
        return

    logger.log(
        level,
        f"{prefix} Exception with {len(sub_exceptions)} sub-exceptions: {_safe_str(exception)}",
    )
    for i, sub_exc in enumerate(sub_exceptions):
        logger.log(
            level,
            f"{prefix} Sub-exception {i+1}: {type(sub_exc).__name__}: {_safe_str(sub_exc)}",
            exc_info=sub_exc,
        )
