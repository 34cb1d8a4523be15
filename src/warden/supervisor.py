"""
Supervisor - the orchestration loop around one containerized application.

Restores persisted state on first start, runs the application container, and
interleaves scheduled backups and image updates with supervision of the app
until the app exits on its own, shutdown is requested, or a fatal error
occurs.

Manifesto:
    - **One loop, one app:** there is always exactly one current app process.
      Workflows hand back the process to supervise next.
    - **First ready wins:** each iteration races the due backup, the due
      update, the app's exit and shutdown. Losing arms are cancelled before
      the winner is handled.
    - **Shutdown is not a failure:** a run that ends because the operator
      asked for it ends with ``ShutdownRequested``, after the app has
      finished its termination escalation.
    - **Fatal means stop everything:** any other error raises the shutdown
      coordinator so the app is terminated, waits for it, and re-raises.

Architecture:
    ::

        run()
          │
          ├─ restore_all(config.restore)
          ├─ seed last backup times from the repositories
          ├─ spawn app
          │
          └─ loop while shutdown not raised
               ┌──────────────────────────────────────────────────┐
               │ race:  backup sleep │ update sleep │ app exit │ shutdown │
               └──────────────────────────────────────────────────┘
                  │            │             │            │
              run_backup   run_update   return status  wait app,
              last = now   last = now                  ShutdownRequested

Times:
    Schedules are evaluated in the operator's timezone (``timezone``, UTC by
    default). The clock is injectable so tests can pin ``now``.

Tags:
    supervisor, orchestration, asyncio, backup, update, restore
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable
from datetime import datetime, timedelta, timezone as dt_timezone, tzinfo

from warden.config import BackupPolicy, SupervisorConfig
from warden.core.errors import ShutdownRequested, WaitError, is_fatal
from warden.core.timestamps import utc_now
from warden.execution.process import ExitStatus, SupervisedProcess
from warden.execution.shutdown import ShutdownCoordinator
from warden.logging import get_logger
from warden.tools import Toolbox
from warden.workflows import restore_all, run_backup, run_update

logger = get_logger(__name__)

# Race arm names, in the order simultaneous winners are handled.
_PRIORITY = ("shutdown", "app", "backup", "update")


class Supervisor:
    """Runs the application and its scheduled maintenance until told to stop.

    Parameters
    ----------
    config
        Validated supervisor configuration.
    tools
        Container runtime and restic adapters. Defaults to ``docker`` and
        ``restic`` on ``PATH``.
    shutdown
        Coordinator shared with the signal handlers.
    timezone
        Zone the daily and weekly schedules are evaluated in.
    clock
        Returns the current aware time. Defaults to ``utc_now``.
    grace_period
        Overrides the toolbox's SIGTERM-to-SIGKILL grace period.
    """

    def __init__(
        self,
        config: SupervisorConfig,
        tools: Toolbox | None = None,
        shutdown: ShutdownCoordinator | None = None,
        *,
        timezone: tzinfo = dt_timezone.utc,
        clock: Callable[[], datetime] = utc_now,
        grace_period: float | None = None,
    ) -> None:
        tools = tools or Toolbox()
        if grace_period is not None:
            tools = dataclasses.replace(tools, grace_period=grace_period)

        self.config = config
        self.tools = tools
        self.shutdown = shutdown or ShutdownCoordinator()
        self.timezone = timezone
        self._clock = clock

        self.app_process: SupervisedProcess | None = None
        self.last_backup: list[datetime | None] = [None] * len(config.backup)
        self.last_update: datetime | None = None

    def now(self) -> datetime:
        return self._clock().astimezone(self.timezone)

    async def run(self) -> ExitStatus:
        """Supervise until the app exits, shutdown is requested, or a fatal error.

        Returns:
            The app's exit status when it exited on its own.

        Raises:
            ShutdownRequested: Shutdown was requested; the app has stopped.
            WardenError: A fatal spawn, wait, restore, backup or update
                failure; the app has been stopped.
        """
        try:
            return await self._run()
        except BaseException as exc:
            if not is_fatal(exc):
                logger.info("supervisor.stopped", reason=self.shutdown.reason or str(exc))
                await self._drain_app()
                raise
            logger.error("supervisor.fatal", error=str(exc), error_type=type(exc).__name__)
            self.shutdown.raise_shutdown(f"fatal error: {type(exc).__name__}")
            await self._drain_app()
            raise

    async def _run(self) -> ExitStatus:
        await restore_all(self.config.restore, self.tools, self.shutdown)
        if self.shutdown.is_raised():
            raise ShutdownRequested("Shutting down before starting app")

        for index, policy in enumerate(self.config.backup):
            self.last_backup[index] = await self.tools.restic.latest_snapshot_time(
                policy, self.shutdown
            )
        if self.shutdown.is_raised():
            raise ShutdownRequested("Shutting down before starting app")

        self.app_process = await self._spawn_app()

        while not self.shutdown.is_raised():
            arm, task, backup_index = await self._race()

            if arm == "shutdown":
                await self.app_process.wait()
                raise ShutdownRequested(f"Shutting down: {self.shutdown.reason or 'requested'}")

            if arm == "app":
                status = task.result()
                if self.shutdown.is_raised():
                    raise ShutdownRequested("Shutting down after app exit")
                logger.info("supervisor.app_exited", process=self.app_process.name, status=str(status))
                return status

            if arm == "backup":
                policy = self.config.backup[backup_index]
                self.app_process = await run_backup(
                    policy, self.config.app, self.app_process, self.tools, self.shutdown
                )
                self.last_backup[backup_index] = self.now()
            else:
                self.app_process = await run_update(
                    self.config.app, self.app_process, self.tools, self.shutdown
                )
                self.last_update = self.now()

        await self.app_process.wait()
        raise ShutdownRequested(f"Shutting down: {self.shutdown.reason or 'requested'}")

    async def _spawn_app(self) -> SupervisedProcess:
        return await self.tools.spawn(self.tools.runtime.run_app(self.config.app), self.shutdown)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _local(self, value: datetime | None) -> datetime | None:
        return value.astimezone(self.timezone) if value is not None else None

    def due_backup(self, now: datetime) -> tuple[int, timedelta] | None:
        """Index and delay of the backup policy that is due first, if any."""
        earliest: tuple[int, timedelta] | None = None
        for index, policy in enumerate(self.config.backup):
            delay = policy.interval.next(self._local(self.last_backup[index]), now)
            if delay is None:
                continue
            if earliest is None or delay < earliest[1]:
                earliest = (index, delay)
        return earliest

    def due_update(self, now: datetime) -> timedelta | None:
        return self.config.update.interval.next(self._local(self.last_update), now)

    async def _race(self) -> tuple[str, asyncio.Future, int | None]:
        assert self.app_process is not None
        now = self.now()
        backup = self.due_backup(now)
        update = self.due_update(now)
        self._log_schedule(backup, update)

        arms: dict[asyncio.Future, str] = {
            asyncio.ensure_future(self.shutdown.wait_raised()): "shutdown",
            asyncio.ensure_future(self.app_process.wait()): "app",
        }
        if backup is not None:
            arms[asyncio.ensure_future(asyncio.sleep(backup[1].total_seconds()))] = "backup"
        if update is not None:
            arms[asyncio.ensure_future(asyncio.sleep(update.total_seconds()))] = "update"

        try:
            done, _ = await asyncio.wait(arms, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in arms if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        winners = {arms[task]: task for task in done}
        arm = next(name for name in _PRIORITY if name in winners)
        backup_index = backup[0] if arm == "backup" and backup is not None else None
        return arm, winners[arm], backup_index

    def _log_schedule(
        self,
        backup: tuple[int, timedelta] | None,
        update: timedelta | None,
    ) -> None:
        if backup is not None:
            policy: BackupPolicy = self.config.backup[backup[0]]
            logger.info("schedule.next_backup", src=str(policy.src), due_in=str(backup[1]))
        elif self.config.backup:
            logger.info("schedule.next_backup", due_in="never")
        if update is not None:
            logger.info("schedule.next_update", image=self.config.app.image, due_in=str(update))
        else:
            logger.info("schedule.next_update", due_in="never")

    async def _drain_app(self) -> None:
        if self.app_process is None:
            return
        try:
            await self.app_process.wait()
        except WaitError as exc:
            logger.warning("supervisor.app_wait_failed", **exc.to_dict())
