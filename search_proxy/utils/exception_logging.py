"""
Utility functions for exception logging that never raise themselves.

Starlette runs streaming responses inside anyio task groups, so a failure
while relaying a body may surface as an exception group; those are expanded
into their sub-exceptions so the root cause ends up in the log.
"""

import logging


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            try:
                return f"<{type(obj).__name__} object (string conversion failed)>"
            except Exception:
                return "<object (all string conversions failed)>"


def _safe_get_exceptions(exception_group) -> list:
    """Return the sub-exceptions of an exception group, or an empty list."""
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def find_exception_in_exception_groups(exception: BaseException, target_type):
    """
    Recursively search an exception and its sub-exceptions for one of the target type.

    Returns:
        The first matching exception, or None if not found
    """
    try:
        if isinstance(exception, target_type):
            return exception
        if hasattr(exception, "exceptions"):
            for sub_exc in _safe_get_exceptions(exception):
                found = find_exception_in_exception_groups(sub_exc, target_type)
                if found is not None:
                    return found
        return None
    except Exception:
        return None


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback, including sub-exceptions of exception groups.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]", "[Server]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        safe_exception_str = "None" if exception is None else _safe_str(exception)
        sub_exceptions = (
            _safe_get_exceptions(exception)
            if exception is not None and hasattr(exception, "exceptions")
            else []
        )

        if sub_exceptions:
            logger.log(
                level,
                f"{safe_prefix} Exception with {len(sub_exceptions)} sub-exceptions: {safe_exception_str}",
            )
            for i, sub_exc in enumerate(sub_exceptions):
                try:
                    logger.log(
                        level,
                        f"{safe_prefix} Sub-exception {i+1}: {type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                        exc_info=sub_exc,
                    )
                except Exception:
                    logger.log(level, f"{safe_prefix} Sub-exception {i+1}: (logging failed)")
            return

        try:
            logger.log(
                level,
                f"{safe_prefix} Exception: {safe_exception_str}",
                exc_info=exception if exception is not None else False,
            )
        except Exception:
            logger.log(level, f"{safe_prefix} Exception: {safe_exception_str}")
    except Exception:
        # Last resort; logging must never take the request down with it
        try:
            if logger is not None:
                logger.log(logging.ERROR, "Exception logging failed")
        except Exception:
            pass


def format_exception_message(exception: BaseException) -> str:
    """Single-line description of an exception, naming sub-exceptions of groups."""
    try:
        if exception is None:
            return "None"
        sub_exceptions = (
            _safe_get_exceptions(exception) if hasattr(exception, "exceptions") else []
        )
        if not sub_exceptions:
            return _safe_str(exception)
        joined = "; ".join(
            f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}" for sub_exc in sub_exceptions
        )
        return f"{_safe_str(exception)} (Sub-exceptions: {joined})"
    except Exception:
        return "<exception (all formatting failed)>"
