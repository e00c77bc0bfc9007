"""
Failure classification for mutator backends.

Error messages are matched against two ordered pattern tables. Permanent
patterns are checked first and win over transient ones. Anything that
matches neither table is treated as permanent.
"""

from __future__ import annotations

import re
from enum import Enum

from guild_templater.constants import HTTP_RATE_LIMIT, HTTP_SERVER_ERROR_MIN
from guild_templater.exceptions import OperationTimeoutError


class ErrorClass(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


PERMANENT_ERROR_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"syntax error",
        r"compile error",
        r"invalid syntax",
        r"expected",  # AppleScript parse errors read "Expected ... but found ..."
        r"permission denied",
        r"not permitted",
    )
)

TRANSIENT_ERROR_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        # UI timing
        r"can't get",
        r"unable to find",
        r"doesn't understand",
        r"not found",
        r"timed out",
        r"timeout",
        # Application state
        r"connection invalid",
        r"not running",
        r"application isn't running",
        # UI elements
        r"no such element",
        r"element not found",
        r"ui element",
        # Accessibility
        r"not accessible",
        r"accessibility",
        # Generic
        r"try again",
        r"temporarily unavailable",
        r"busy",
    )
)


def classify_error(message: str | None) -> ErrorClass:
    """Classify an error message using the pattern tables."""
    if not message:
        return ErrorClass.UNKNOWN

    for pattern in PERMANENT_ERROR_PATTERNS:
        if pattern.search(message):
            return ErrorClass.PERMANENT

    for pattern in TRANSIENT_ERROR_PATTERNS:
        if pattern.search(message):
            return ErrorClass.TRANSIENT

    return ErrorClass.UNKNOWN


def is_transient_error(
    error: BaseException | None = None, message: str | None = None
) -> bool:
    """
    Decide whether a failure is worth retrying.

    Args:
        error: An exception raised by the backend call, if any
        message: The error text of an unsuccessful result, if any

    Returns:
        True only when the failure is classified as transient
    """
    if isinstance(error, OperationTimeoutError):
        return True

    if error is not None:
        error_class = classify_error(str(error))
        if error_class is not ErrorClass.UNKNOWN:
            return error_class is ErrorClass.TRANSIENT

    return classify_error(message) is ErrorClass.TRANSIENT


def is_transient_status(status_code: int | None) -> bool:
    """HTTP status classification: rate limits and server errors are transient."""
    if status_code is None:
        return False
    return status_code == HTTP_RATE_LIMIT or status_code >= HTTP_SERVER_ERROR_MIN
