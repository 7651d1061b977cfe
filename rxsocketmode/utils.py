"""Utility helpers used across ``rxsocketmode`` modules."""

import traceback


def get_short_error_info(e: BaseException) -> str:
    """
    Get a short error information from an exception.

    Args:
        e (BaseException): The exception to get the error information from.

    Returns:
        str: A short error information.
    """
    return f"{type(e).__name__}: {str(e)}"


# the function to get the full error information from an exception.
def get_full_error_info(e: BaseException) -> str:
    """
    Get the full error information from an exception.

    Args:
        e (BaseException): The exception to get the error information from.

    Returns:
        str: The full error information.
    """
    return "".join(traceback.format_exception(type(e), e, e.__traceback__))


def truncate(text: str | bytes, limit: int = 120) -> str:
    """Shorten a raw frame for log output."""
    if isinstance(text, bytes):
        text = text.decode(errors="replace")
    if len(text) <= limit:
        return text
    return text[:limit] + f"...(+{len(text) - limit} chars)"
