"""Schedule policies for recurring backup and update runs."""

from warden.scheduling.interval import (
    DAILY,
    HOURLY,
    WEEKLY,
    CronInterval,
    FixedInterval,
    Interval,
)

__all__ = [
    "Interval",
    "FixedInterval",
    "CronInterval",
    "HOURLY",
    "DAILY",
    "WEEKLY",
]
