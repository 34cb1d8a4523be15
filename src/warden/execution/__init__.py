"""
Process supervision primitives.

- ``ShutdownCoordinator``: one-way broadcast cancellation signal
- ``CommandSpec``: description of an external command
- ``SupervisedProcess``: a spawned command with output capture and
  graceful-then-forced termination
"""

from warden.execution.commands import CommandSpec
from warden.execution.process import (
    GRACE_PERIOD_SECONDS,
    ExitStatus,
    SupervisedProcess,
    TerminationState,
)
from warden.execution.shutdown import (
    ShutdownCoordinator,
    install_signal_handlers,
    remove_signal_handlers,
)

__all__ = [
    "CommandSpec",
    "ExitStatus",
    "GRACE_PERIOD_SECONDS",
    "ShutdownCoordinator",
    "SupervisedProcess",
    "TerminationState",
    "install_signal_handlers",
    "remove_signal_handlers",
]
