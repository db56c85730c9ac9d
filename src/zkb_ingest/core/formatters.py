"""
zkb-ingest Output Formatters

Helpers for the JSON payloads printed by CLI commands.
"""

from datetime import date, datetime, timezone


def get_utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def format_datetime(dt: datetime) -> str:
    """Format a datetime as an ISO timestamp with a Z suffix."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_utc_timestamp() -> str:
    """
    Get current UTC timestamp string.

    Returns:
        ISO format timestamp like "2026-01-15T12:30:00Z"
    """
    return format_datetime(get_utc_now())


def parse_day(value: str) -> date:
    """
    Parse a CLI day argument.

    Accepts YYYY-MM-DD or the zKillboard YYYYMMDD form.
    """
    for fmt in ("%Y-%m-%d", "%Y%m%d"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"invalid date {value!r}; expected YYYY-MM-DD")
