"""
DateTime utility functions for the service.
"""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def get_display_timezone():
    """
    Get the timezone admin-facing timestamps are rendered in.

    Returns:
        ZoneInfo: configured display timezone (Config.DISPLAY_TIMEZONE)
    """
    from marketsync.config import Config as cfg
    return ZoneInfo(cfg.DISPLAY_TIMEZONE)


def format_datetime_local(dt):
    """
    Format a datetime in the display timezone.
    Returns format like: "October 15, 2025 02:30:45 PM"

    Args:
        dt: datetime object, ISO string, or None

    Returns:
        str: Formatted datetime string, or None if dt is None
    """
    if not dt:
        return None

    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt.replace('Z', '+00:00'))
        except ValueError:
            return str(dt)  # Return as-is if parsing fails

    # Naive datetimes in the database are UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(get_display_timezone()).strftime("%B %d, %Y %I:%M:%S %p")


def isoformat_or_none(dt):
    return dt.isoformat() if dt else None


def filename_timestamp(dt=None):
    """
    Filesystem-safe UTC timestamp with millisecond precision.
    Returns format like: "2024-01-01T00-00-00-123Z"
    """
    dt = dt or datetime.utcnow()
    return dt.isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-") + "Z"


def parse_carrier_date(value):
    """
    Parse a delivery date string from the carrier.

    The carrier returns ETDs in a few shapes ("2024-01-05 18:00:00",
    "2024-01-05", "Jan 05, 2024"). Unparseable values return None.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value

    text = str(value).strip()
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass

    for fmt in ("%Y-%m-%d %H:%M:%S", "%d-%m-%Y", "%b %d, %Y", "%d %b %Y"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None
