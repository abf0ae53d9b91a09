"""
Exception logging helpers for proxy failures.

Streaming responses run inside anyio task groups, so a failure in the
upstream body can surface as an exception group. These helpers unwrap such
groups so every underlying cause ends up in the log and in error messages.
"""

import logging
from typing import Optional, Type


def _safe_str(obj) -> str:
    """
    Convert an object to a string without ever raising.

    Args:
        obj: The object to convert

    Returns:
        str(obj), falling back to repr(obj) or a type placeholder
    """
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


def find_exception_in_exception_groups(
    exception: BaseException, target_type: Type[BaseException]
) -> Optional[BaseException]:
    """
    Recursively search an exception and any grouped sub-exceptions for the
    first instance of target_type.

    Args:
        exception: The exception to search through
        target_type: The exception type to look for

    Returns:
        The matching exception, or None if not found
    """
    if isinstance(exception, target_type):
        return exception
    for sub_exc in _sub_exceptions(exception):
        found = find_exception_in_exception_groups(sub_exc, target_type)
        if found is not None:
            return found
    return None


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception, including each sub-exception of an exception group.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g. "[Proxy]", "[Rewrite]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    sub_exceptions = _sub_exceptions(exception)
    try:
        if not sub_exceptions:
            logger.log(
                level,
                f"{prefix} Exception: {_safe_str(exception)}",
                exc_info=exception,
            )
            return

        logger.log(
            level,
            f"{prefix} Exception with {len(sub_exceptions)} sub-exceptions: "
            f"{_safe_str(exception)}",
        )
        for i, sub_exc in enumerate(sub_exceptions):
            logger.log(
                level,
                f"{prefix} Sub-exception {i + 1}: {type(sub_exc).__name__}: "
                f"{_safe_str(sub_exc)}",
                exc_info=sub_exc,
            )
    except Exception:
        # Logging must never break the request path
        logger.log(level, f"{prefix} Exception (logging details failed)")


def format_exception_message(exception: Optional[BaseException]) -> str:
    """
    Format an exception message for clients, listing grouped sub-exceptions.

    Args:
        exception: The exception to format

    Returns:
        A one-line description of the exception
    """
    if exception is None:
        return "None"

    message = _safe_str(exception)
    if not message:
        message = type(exception).__name__

    sub_exceptions = _sub_exceptions(exception)
    if not sub_exceptions:
        return message

    details = "; ".join(
        f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}" for sub_exc in sub_exceptions
    )
    return f"{message} (Sub-exceptions: {details})"
