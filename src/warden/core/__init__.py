"""
warden core primitives: errors, settings and timestamp helpers.
"""

from warden.core.errors import (
    BackupError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    RestoreError,
    ShutdownRequested,
    SpawnError,
    UpdateError,
    WaitError,
    WardenError,
    WorkflowError,
)
from warden.core.timestamps import parse_timestamp, resolve_timezone, utc_now

__all__ = [
    # Errors
    "WardenError",
    "ErrorCategory",
    "ErrorContext",
    "ConfigError",
    "SpawnError",
    "WaitError",
    "WorkflowError",
    "RestoreError",
    "BackupError",
    "UpdateError",
    "ShutdownRequested",
    # Timestamps
    "utc_now",
    "parse_timestamp",
    "resolve_timezone",
]
