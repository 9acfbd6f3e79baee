"""Timezone-aware datetime helpers.

All instants inside Backcast are aware and normalized to UTC. RSS dates are
read and written in RFC 2822 form.
"""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime

from backcast.utils.errors import MalformedTimestampError


def now_utc() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Convert an aware datetime to UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_rfc2822(value: str) -> datetime:
    """Parse an RSS ``pubDate`` string.

    Args:
        value: Date string such as ``"Tue, 10 Jun 2003 04:00:00 GMT"``

    Returns:
        Aware UTC datetime

    Raises:
        MalformedTimestampError: If the string is not an RFC 2822 date
    """
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError) as e:
        raise MalformedTimestampError(f"Unparseable publish date: {value!r}") from e

    if parsed is None:
        raise MalformedTimestampError(f"Unparseable publish date: {value!r}")

    return ensure_utc(parsed)


def format_rfc2822(value: datetime) -> str:
    """Format an instant for an RSS ``pubDate`` element."""
    return format_datetime(ensure_utc(value))


def format_short_date(value: datetime) -> str:
    """Format as ``"07 Mar 2021"``."""
    return ensure_utc(value).strftime("%d %b %Y")


def format_release_time(value: datetime) -> str:
    """Format as ``"07 Mar 2021 at 04:30 PM UTC"``."""
    return ensure_utc(value).strftime("%d %b %Y at %I:%M %p UTC")


def format_duration(value: timedelta) -> str:
    """Human readable duration, e.g. ``"3d 4h 10m"``."""
    total = int(abs(value.total_seconds()))
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes or not parts:
        parts.append(f"{minutes}m")

    sign = "-" if value.total_seconds() < 0 else ""
    return sign + " ".join(parts)
