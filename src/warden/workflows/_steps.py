"""Building blocks shared by the backup, restore and update workflows."""

from __future__ import annotations

from warden.core.errors import ErrorContext, ShutdownRequested, WaitError, WorkflowError
from warden.execution.commands import CommandSpec
from warden.execution.process import ExitStatus, SupervisedProcess
from warden.execution.shutdown import ShutdownCoordinator
from warden.logging import get_logger
from warden.tools import Toolbox

logger = get_logger(__name__)


def ensure_running(shutdown: ShutdownCoordinator, during: str) -> None:
    """Raise ``ShutdownRequested`` if shutdown has been raised."""
    if shutdown.is_raised():
        raise ShutdownRequested(f"Shutting down during {during}")


async def run_step(
    tools: Toolbox,
    command: CommandSpec,
    shutdown: ShutdownCoordinator,
    error_type: type[WorkflowError] = WorkflowError,
) -> ExitStatus:
    """Spawn ``command``, wait for it, and fail on a non-zero exit.

    The command always runs to completion (or to its own termination
    escalation). If shutdown was raised meanwhile, the result is
    ``ShutdownRequested`` rather than the command's failure.

    Raises:
        SpawnError: The command could not be started.
        WaitError: Its exit could not be observed.
        ShutdownRequested: Shutdown was raised before or during the step.
        error_type: The command exited unsuccessfully.
    """
    ensure_running(shutdown, command.label)

    process = await tools.spawn(command, shutdown)
    status = await process.wait()

    ensure_running(shutdown, command.label)
    if not status.success:
        context = ErrorContext(
            label=command.label,
            command=command.display(),
            pid=process.pid,
            returncode=status.returncode,
        )
        raise error_type(f"{command.label} failed with {status}", context=context)
    return status


async def retire(process: SupervisedProcess) -> ExitStatus | None:
    """Terminate ``process`` and wait for it, ignoring its exit status.

    A failure to observe the exit is logged; the process is gone either way
    once its exit monitor has finished.
    """
    try:
        return await process.terminate_and_wait()
    except WaitError as exc:
        logger.warning("process.retire_failed", process=process.name, **exc.to_dict())
        return None
