"""
Timestamp and timezone utilities (stdlib-only).

The external tools report times in RFC 3339 with nanosecond fractions
(``2024-05-01T10:20:30.123456789Z`` from docker,
``2024-05-01T20:20:30.123456789+10:00`` from restic). ``datetime`` only keeps
microseconds, so fractions are trimmed to six digits before parsing.

Scheduling works in the operator's timezone so that daily and weekly
boundaries follow the local calendar. ``resolve_timezone`` turns the
configured name into a ``ZoneInfo`` and falls back to UTC when the name is
unknown.

Tags:
    timestamps, timezone, zoneinfo, rfc3339, warden, stdlib-only
"""

import logging
import re
from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

_FRACTION = re.compile(r"\.(\d+)")


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware datetime.

    Raises:
        ValueError: If ``value`` is not a valid timestamp.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the timezone called ``name``, or UTC when it cannot be found."""
    if not name or name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("timezone.unknown name=%s fallback=UTC", name)
        return UTC
