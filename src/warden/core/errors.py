"""
Structured error types for warden.

Every failure the supervisor can hit while managing the application is
expressed as a ``WardenError`` subclass. Errors carry a category for routing,
a structured context naming the command involved, and the chained cause.

Manifesto:
    - **Typed hierarchy:** spawn, wait, workflow and configuration failures
      are distinct types, so callers decide by type, not by message.
    - **Rich context:** the offending command label, argv, pid and exit code
      travel with the error and land in the structured log.
    - **Error chaining:** the original ``OSError`` / ``ValueError`` is kept as
      ``cause`` and ``__cause__``.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       WardenError                               │
        │  (category, context, cause)                                     │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                 │
        │  ConfigError       SpawnError        WaitError                  │
        │  (CONFIG)          (SPAWN)           (WAIT)                     │
        │                                                                 │
        │  WorkflowError     ShutdownRequested                            │
        │  (WORKFLOW)        (SHUTDOWN)                                   │
        │       │                                                         │
        │  RestoreError  BackupError  UpdateError                         │
        └─────────────────────────────────────────────────────────────────┘

Propagation:
    Spawn, wait and workflow errors are fatal. They bubble up to
    ``Supervisor.run()`` and from there to the CLI, which logs them and exits
    with status 1. ``ShutdownRequested`` is not a failure: it marks a run that
    ended because the operator asked it to.

Examples:
    >>> err = SpawnError("Command not found: restic").with_context(label="backup")
    >>> err.category
    <ErrorCategory.SPAWN: 'SPAWN'>
    >>> err.context.label
    'backup'

Tags:
    error-handling, exception-hierarchy, error-context, warden
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and logging."""

    CONFIG = "CONFIG"
    SPAWN = "SPAWN"
    WAIT = "WAIT"
    WORKFLOW = "WORKFLOW"
    SHUTDOWN = "SHUTDOWN"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set end up in ``to_dict()``. Environment values are
    never stored here because they may hold repository credentials.

    Attributes:
        label: Label of the supervised command (``app``, ``backup``, ...)
        command: Rendered argv of the command
        pid: Process id, when the process was spawned
        returncode: Exit code observed, when the process exited
        path: Filesystem path involved (config file, restore target)
        metadata: Anything else worth logging
    """

    label: str | None = None
    command: str | None = None
    pid: int | None = None
    returncode: int | None = None
    path: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize all non-None fields, flattening ``metadata``."""
        result: dict[str, Any] = {}
        for name in ("label", "command", "pid", "returncode", "path"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        result.update(self.metadata)
        return result


class WardenError(Exception):
    """
    Base exception for all warden errors.

    Subclasses set ``default_category``. The constructor accepts an explicit
    ``category`` override, a prepared ``ErrorContext`` and the ``cause``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> WardenError:
        """
        Add context to this error (fluent API).

        Known ``ErrorContext`` fields are set directly; anything else goes
        into ``metadata``.
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for structured logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(WardenError):
    """Configuration file is missing, unreadable or invalid."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# PROCESS ERRORS
# =============================================================================


class SpawnError(WardenError):
    """
    A child process could not be started.

    Raised by ``SupervisedProcess.spawn`` for a missing binary, a permission
    problem, or a missing output pipe. Never deferred to ``wait()``.
    """

    default_category = ErrorCategory.SPAWN


class WaitError(WardenError):
    """The exit status of a child process could not be observed."""

    default_category = ErrorCategory.WAIT


# =============================================================================
# WORKFLOW ERRORS
# =============================================================================


class WorkflowError(WardenError):
    """A backup, restore or update workflow failed."""

    default_category = ErrorCategory.WORKFLOW


class RestoreError(WorkflowError):
    """One or more restore commands failed at startup."""


class BackupError(WorkflowError):
    """The backup command failed."""


class UpdateError(WorkflowError):
    """Pulling the application image failed."""


# =============================================================================
# SHUTDOWN
# =============================================================================


class ShutdownRequested(WardenError):
    """
    The run ended because shutdown was requested.

    Not a failure: a wait that resolves because of shutdown produces this
    instead of an error from the interrupted command.
    """

    default_category = ErrorCategory.SHUTDOWN

    def __init__(self, message: str = "Shutting down", **kwargs: Any):
        super().__init__(message, **kwargs)


def is_fatal(error: BaseException) -> bool:
    """Return True when ``error`` must terminate the supervisor with a failure."""
    if isinstance(error, ShutdownRequested):
        return False
    return True
