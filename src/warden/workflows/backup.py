"""Backup workflow - snapshot one source path with restic.

    stop_app:  terminate app ──► restic backup ──► respawn app ──► new process
    live:      restic backup (app keeps running) ──────────────► same process

A failed backup either stops the supervisor (``on_failure: fail_fast``) or
is logged and retried at the next interval (``on_failure: retry_next``). In
both cases a raised shutdown wins: the app is never respawned once shutdown
has been requested.
"""

from __future__ import annotations

from warden.config import AppSpec, BackupFailurePolicy, BackupPolicy, BackupStrategy
from warden.core.errors import (
    BackupError,
    ErrorContext,
    SpawnError,
    WaitError,
    WorkflowError,
)
from warden.execution.process import SupervisedProcess
from warden.execution.shutdown import ShutdownCoordinator
from warden.logging import get_logger
from warden.tools import Toolbox
from warden.workflows._steps import ensure_running, retire, run_step

logger = get_logger(__name__)


async def run_backup(
    policy: BackupPolicy,
    app: AppSpec,
    app_process: SupervisedProcess,
    tools: Toolbox,
    shutdown: ShutdownCoordinator,
) -> SupervisedProcess:
    """Back up ``policy.src`` and return the app process to supervise next.

    Raises:
        BackupError: The backup failed and the policy is ``fail_fast``.
        SpawnError: The app could not be respawned after a stop-app backup.
        ShutdownRequested: Shutdown was raised during the workflow.
    """
    stop_app = policy.strategy == BackupStrategy.STOP_APP
    log = logger.bind(src=str(policy.src), strategy=policy.strategy.value)

    if stop_app:
        log.info("backup.stopping_app", process=app_process.name)
        await retire(app_process)

    log.info("backup.started")
    try:
        await run_step(tools, tools.restic.backup(policy), shutdown, BackupError)
    except (WorkflowError, SpawnError, WaitError) as exc:
        if policy.on_failure == BackupFailurePolicy.FAIL_FAST:
            if isinstance(exc, BackupError):
                raise
            raise BackupError(
                f"Backup of {policy.src} failed: {exc.message}",
                context=ErrorContext(label="backup", path=str(policy.src)),
                cause=exc,
            ) from exc
        log.error("backup.failed", retry="next interval", **exc.to_dict())
    else:
        log.info("backup.completed")

    if stop_app:
        ensure_running(shutdown, "backup")
        app_process = await tools.spawn(tools.runtime.run_app(app), shutdown)
        log.info("backup.app_restarted", process=app_process.name)

    return app_process
