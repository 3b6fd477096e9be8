"""Error category codes consumed by the retry engine and circuit breaker."""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    """Closed set of failure categories produced by the external classifier.

    The category alone selects a retry strategy; see
    ``warden.execution.retry_strategy.STRATEGY_TABLE``.
    """

    RATE_LIMIT = "rate_limit"
    """Upstream API is throttling - wait and retry."""

    PERMISSION_DENIED = "permission_denied"
    """Worker was refused a tool or file permission - needs a human."""

    TEST_FAILURE = "test_failure"
    """Tests ran and failed - retry with a focused hint."""

    BUILD_ERROR = "build_error"
    """Compilation or type-check failure - retry with a hint."""

    DEPENDENCY_ERROR = "dependency_error"
    """Missing or broken package - retry with a hint."""

    CONTEXT_OVERFLOW = "context_overflow"
    """Worker ran out of context - start a fresh session."""

    API_ERROR = "api_error"
    """Transient upstream API failure - wait and retry."""

    UNKNOWN = "unknown"
    """Anything the classifier could not place - not retried."""


def parse_category(value: ErrorCategory | str | None) -> ErrorCategory:
    """Coerce a raw category label into an ErrorCategory.

    Labels are matched case-insensitively after trimming whitespace.
    Unrecognized or missing labels map to ``ErrorCategory.UNKNOWN``.
    """
    if isinstance(value, ErrorCategory):
        return value
    if not value:
        return ErrorCategory.UNKNOWN
    try:
        return ErrorCategory(str(value).strip().lower())
    except ValueError:
        return ErrorCategory.UNKNOWN
