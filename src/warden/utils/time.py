"""Time utilities for Warden.

Provides timezone-aware datetime helpers used by persisted state documents.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def iso_timestamp() -> str:
    """Return the current UTC time as an ISO8601 string."""
    return utc_now().isoformat()
