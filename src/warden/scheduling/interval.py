"""Interval evaluation - when is the next trigger instant.

Manifesto:
    A schedule is pure computation. Given the policy, the last time the
    action ran and the current time, ``Interval.next`` answers "how long until
    the action is due". It never sleeps, never reads the clock and never
    returns a negative duration, so the orchestration loop can be tested with
    hand-picked instants.

Tags:
    warden, scheduling, interval, cron, croniter

Doc-Types:
    api-reference


┌──────────────────────────────────────────────────────────────────────────────┐
│  INTERVAL KINDS                                                               │
│                                                                               │
│   hourly   candidate = (last or now) + 1 hour        (absolute time)          │
│   daily    candidate = (last or now) + 1 day         (local calendar day)     │
│   weekly   candidate = (last or now) + 7 days        (local calendar days)    │
│   cron     candidate = first occurrence > now        (``last`` ignored)       │
│                                                                               │
│   candidate >= now  ──►  candidate - now                                      │
│   candidate <  now  ──►  0            (catch up once after downtime)          │
│   no candidate      ──►  None         (schedule exhausted)                    │
│                                                                               │
│  Callers pass ``now`` and ``last`` in the operator's timezone so daily and    │
│  weekly boundaries follow local days. Differences are taken between UTC      │
│  instants, so DST transitions never distort the returned wait.               │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from croniter import CroniterBadDateError, croniter

_ZERO = timedelta(0)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Interval:
    """Base class for schedule policies.

    Use :meth:`parse` to build one from configuration text.
    """

    def next(self, last: datetime | None, now: datetime) -> timedelta | None:
        """Return the wait until the next trigger, or None when exhausted."""
        raise NotImplementedError

    @classmethod
    def parse(cls, value: str | Interval) -> Interval:
        """Parse ``hourly``, ``daily``, ``weekly`` or a cron expression.

        Raises:
            ValueError: If the text is neither a keyword nor a valid cron
                expression.
        """
        if isinstance(value, Interval):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Interval must be a string, got {type(value).__name__}")

        text = value.strip()
        keyword = _KEYWORDS.get(text.lower())
        if keyword is not None:
            return keyword
        if text and croniter.is_valid(text):
            return CronInterval(text)
        raise ValueError(f"Invalid interval {value!r}: expected hourly, daily, weekly or a cron expression")


@dataclass(frozen=True)
class FixedInterval(Interval):
    """A fixed period anchored on the last trigger time."""

    name: str
    hours: int = 0
    days: int = 0

    def next(self, last: datetime | None, now: datetime) -> timedelta | None:
        now = _aware(now)
        anchor = _aware(last).astimezone(now.tzinfo) if last is not None else now

        if self.days:
            # Wall-clock arithmetic keeps the local time of day across DST.
            candidate = (anchor + timedelta(days=self.days)).astimezone(UTC)
        else:
            candidate = anchor.astimezone(UTC) + timedelta(hours=self.hours)

        now_utc = now.astimezone(UTC)
        if candidate >= now_utc:
            return candidate - now_utc
        return _ZERO

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class CronInterval(Interval):
    """A cron expression evaluated in the timezone of ``now``."""

    expression: str

    def next(self, last: datetime | None, now: datetime) -> timedelta | None:
        now = _aware(now)
        schedule = croniter(self.expression, now)
        try:
            candidate = schedule.get_next(datetime)
            while candidate <= now:
                candidate = schedule.get_next(datetime)
        except CroniterBadDateError:
            return None

        wait = _aware(candidate).astimezone(UTC) - now.astimezone(UTC)
        return max(wait, _ZERO)

    def __str__(self) -> str:
        return self.expression


HOURLY = FixedInterval("hourly", hours=1)
DAILY = FixedInterval("daily", days=1)
WEEKLY = FixedInterval("weekly", days=7)

_KEYWORDS = {"hourly": HOURLY, "daily": DAILY, "weekly": WEEKLY}
