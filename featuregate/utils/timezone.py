"""
Timezone Utilities.

Golden Rules:
1. Flag evaluation always compares aware UTC datetimes
2. Naive datetimes in configuration are taken as UTC
3. Configuration may use ISO 8601 or RFC 1123 (appsettings style)
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

# UTC constant
UTC = timezone.utc


# ============================================================
# CORE FUNCTIONS
# ============================================================

def utc_now() -> datetime:
    """
    Get current time in UTC (timezone-aware).

    Always use this instead of datetime.utcnow() which returns
    naive datetime.
    """
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC. Naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


# ============================================================
# PARSING / FORMATTING
# ============================================================

def to_iso8601(dt: datetime) -> str:
    """
    Format as ISO 8601 with Z suffix.

    Microseconds are kept so a serialized window reloads to the same instant.
    """
    return to_utc(dt).isoformat().replace("+00:00", "Z")


def from_iso8601(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to UTC datetime.

    Handles:
    - "2024-01-15T14:30:00Z"
    - "2024-01-15T09:30:00-05:00"
    """
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"
    dt = datetime.fromisoformat(iso_string)
    return to_utc(dt)


def parse_datetime(value: str | datetime) -> datetime:
    """
    Parse a configured timestamp to an aware UTC datetime.

    Accepts datetimes, ISO 8601 strings and RFC 1123 strings such as
    "Mon, 01 May 2023 13:59:59 GMT".

    Raises:
        ValueError: If the string matches neither format
    """
    if isinstance(value, datetime):
        return to_utc(value)

    text = value.strip()
    try:
        return from_iso8601(text)
    except ValueError:
        pass

    try:
        dt = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError) as e:
        raise ValueError(f"Unrecognised timestamp: {value!r}") from e
    if dt is None:
        raise ValueError(f"Unrecognised timestamp: {value!r}")
    return to_utc(dt)
