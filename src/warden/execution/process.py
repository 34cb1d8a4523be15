"""Supervised process - one external command owned end to end.

A ``SupervisedProcess`` wraps one ``asyncio`` subprocess and three background
tasks: two line pumps that turn the child's stdout and stderr into log lines,
and one exit monitor that owns the child's termination. The monitor is the
only writer of the exit slot; any number of callers may ``wait()`` on it.

Architecture:

    .. code-block:: text

        SupervisedProcess.spawn(command, shutdown)
        ┌──────────────────────────────────────────────────────────────┐
        │ asyncio.create_subprocess_exec  (stdout/stderr = PIPE)      │
        │                                                              │
        │   stdout ──► pump ──► log  "app(4242)" stream=stdout         │
        │   stderr ──► pump ──► log  "app(4242)" stream=stderr         │
        │                                                              │
        │   exit monitor                                               │
        │     race: child exit │ shutdown raised │ terminate requested │
        │       exit wins  ──► EXITED                                  │
        │       stop wins  ──► SIGNALED (SIGTERM)                      │
        │                        ├─ exits within grace ──► EXITED      │
        │                        └─ TIMED_OUT ──► KILLED ──► EXITED    │
        │     writes the exit slot exactly once                        │
        │                                                              │
        │   wait()               ──► reads the exit slot               │
        │   terminate_and_wait() ──► request stop, then wait()         │
        └──────────────────────────────────────────────────────────────┘

Children are started in their own session, so an interrupt typed at the
terminal reaches the supervisor only; the supervisor then escalates each
child itself.

Example:
    >>> shutdown = ShutdownCoordinator()
    >>> command = CommandSpec("backup", "restic", ("backup", "/data"))
    >>> process = await SupervisedProcess.spawn(command, shutdown)
    >>> status = await process.wait()
    >>> status.success
    True

Tags:
    warden, execution, subprocess, supervision, sigterm, sigkill
"""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass
from enum import Enum

from warden.core.errors import ErrorContext, SpawnError, WaitError
from warden.execution.commands import CommandSpec
from warden.execution.shutdown import ShutdownCoordinator
from warden.logging import get_logger

logger = get_logger(__name__)

GRACE_PERIOD_SECONDS = 5.0

# Longest single output line the pumps accept before skipping it.
STREAM_LIMIT = 1024 * 1024

# How long the exit monitor lets the pumps drain after the child exits.
PUMP_DRAIN_SECONDS = 1.0


class TerminationState(str, Enum):
    """Lifecycle of a supervised child.

    ``RUNNING → EXITED`` on natural exit, otherwise
    ``RUNNING → SIGNALED → (EXITED | TIMED_OUT → KILLED → EXITED)``.
    """

    RUNNING = "running"
    SIGNALED = "signaled"
    TIMED_OUT = "timed_out"
    KILLED = "killed"
    EXITED = "exited"


@dataclass(frozen=True)
class ExitStatus:
    """Terminal status of a child process.

    ``returncode`` follows ``asyncio`` conventions: negative values mean the
    child was ended by that signal.
    """

    returncode: int

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def signal(self) -> int | None:
        if self.returncode < 0:
            return -self.returncode
        return None

    @property
    def exit_code(self) -> int:
        """Status to exit the supervisor with when mirroring this child."""
        if 0 <= self.returncode <= 255:
            return self.returncode
        return 1

    def __str__(self) -> str:
        if self.signal is not None:
            try:
                return f"killed by {signal.Signals(self.signal).name}"
            except ValueError:
                return f"killed by signal {self.signal}"
        return f"exit code {self.returncode}"


class SupervisedProcess:
    """An external process with captured output and escalating termination.

    Instances are created with :meth:`spawn`, never directly.
    """

    def __init__(
        self,
        command: CommandSpec,
        process: asyncio.subprocess.Process,
        shutdown: ShutdownCoordinator,
        grace_period: float,
    ) -> None:
        self.command = command
        self.state = TerminationState.RUNNING
        self._process = process
        self._shutdown = shutdown
        self._grace_period = grace_period
        self._terminate_requested = asyncio.Event()
        self._exit: asyncio.Future[ExitStatus | WaitError] = (
            asyncio.get_running_loop().create_future()
        )
        self._log = logger.bind(process=self.name)

        child_log = get_logger("warden.child", process=self.name)
        self._pumps = [
            asyncio.create_task(_pump(process.stdout, child_log, "stdout")),
            asyncio.create_task(_pump(process.stderr, child_log, "stderr")),
        ]
        self._monitor = asyncio.create_task(self._monitor_exit())

    @classmethod
    async def spawn(
        cls,
        command: CommandSpec,
        shutdown: ShutdownCoordinator,
        *,
        grace_period: float = GRACE_PERIOD_SECONDS,
    ) -> SupervisedProcess:
        """Start ``command`` and begin supervising it.

        Raises:
            SpawnError: If the binary is missing, not executable, or the
                output pipes could not be captured.
        """
        logger.info("process.starting", label=command.label, command=command.display())
        context = ErrorContext(label=command.label, command=command.display())

        try:
            process = await asyncio.create_subprocess_exec(
                *command.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=command.build_env(),
                limit=STREAM_LIMIT,
                start_new_session=True,
            )
        except OSError as exc:
            raise _spawn_failed(command, context, exc) from exc

        if process.stdout is None or process.stderr is None:
            process.kill()
            await process.wait()
            context.pid = process.pid
            error = SpawnError(f"Failed to capture output of {command.label}", context=context)
            logger.error("process.spawn_failed", label=command.label, **error.to_dict())
            raise error

        supervised = cls(command, process, shutdown, grace_period)
        supervised._log.info("process.started")
        return supervised

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def label(self) -> str:
        return self.command.label

    @property
    def name(self) -> str:
        return f"{self.command.label}({self._process.pid})"

    @property
    def returncode(self) -> int | None:
        if not self._exit.done():
            return None
        outcome = self._exit.result()
        if isinstance(outcome, ExitStatus):
            return outcome.returncode
        return None

    def done(self) -> bool:
        """True once the exit slot has been populated."""
        return self._exit.done()

    async def wait(self) -> ExitStatus:
        """Wait for the child to exit and return its status.

        Safe to call concurrently and repeatedly; every call observes the same
        terminal value. Cancelling a caller does not affect the child.

        Raises:
            WaitError: If the exit status could not be observed.
        """
        outcome = await asyncio.shield(self._exit)
        if isinstance(outcome, WaitError):
            raise outcome
        return outcome

    async def terminate_and_wait(self) -> ExitStatus:
        """Stop this child (SIGTERM, then SIGKILL after the grace period) and wait.

        Only this process is affected; the shared shutdown state is untouched.
        """
        if not self._terminate_requested.is_set():
            self._log.info("process.terminate_requested")
            self._terminate_requested.set()
        return await self.wait()

    def __repr__(self) -> str:
        return f"SupervisedProcess({self.name}, {self.state.value})"

    # ------------------------------------------------------------------
    # Exit monitor
    # ------------------------------------------------------------------

    async def _monitor_exit(self) -> None:
        try:
            returncode = await self._supervise()
        except asyncio.CancelledError:
            self._settle(self._wait_error("Exit monitor was cancelled"))
            raise
        except OSError as exc:
            error = self._wait_error(f"Failed to observe exit of {self.name}: {exc}", cause=exc)
            self._log.error("process.wait_failed", **error.to_dict())
            self._settle(error)
            return

        _, lingering = await asyncio.wait(self._pumps, timeout=PUMP_DRAIN_SECONDS)
        if lingering:
            # A descendant still holds the pipes open.
            self._log.warning("output.drain_timeout", timeout=PUMP_DRAIN_SECONDS, streams=len(lingering))
            for pump in lingering:
                pump.cancel()
            await asyncio.gather(*lingering, return_exceptions=True)

        status = ExitStatus(returncode)
        if status.success:
            self._log.info("process.exited", status=str(status))
        else:
            self._log.warning("process.exited", status=str(status))
        self._settle(status)

    async def _supervise(self) -> int:
        exit_task = asyncio.ensure_future(self._process.wait())
        stop_tasks = [
            asyncio.create_task(self._shutdown.wait_raised()),
            asyncio.create_task(self._terminate_requested.wait()),
        ]

        try:
            await asyncio.wait([exit_task, *stop_tasks], return_when=asyncio.FIRST_COMPLETED)
            if exit_task.done():
                self._transition(TerminationState.EXITED)
                return exit_task.result()
            return await self._escalate(exit_task)
        finally:
            for task in (exit_task, *stop_tasks):
                if not task.done():
                    task.cancel()

    async def _escalate(self, exit_task: asyncio.Future[int]) -> int:
        reason = "terminate requested" if self._terminate_requested.is_set() else "shutdown"
        self._log.info("process.terminating", reason=reason, grace_period=self._grace_period)

        self._transition(TerminationState.SIGNALED)
        if self._send_signal(signal.SIGTERM):
            done, _ = await asyncio.wait([exit_task], timeout=self._grace_period)
            if done:
                self._transition(TerminationState.EXITED)
                return exit_task.result()
            self._log.warning(
                "process.grace_period_expired",
                grace_period=self._grace_period,
            )

        self._transition(TerminationState.TIMED_OUT)
        self._send_signal(signal.SIGKILL)
        self._transition(TerminationState.KILLED)

        returncode = await exit_task
        self._transition(TerminationState.EXITED)
        return returncode

    def _send_signal(self, sig: signal.Signals) -> bool:
        """Deliver ``sig``. False means delivery failed and the caller should escalate."""
        try:
            self._process.send_signal(sig)
        except ProcessLookupError:
            # Already exited; the exit task observes the status.
            self._log.debug("process.signal_skipped", signal=sig.name, reason="already exited")
        except OSError as exc:
            self._log.error("process.signal_failed", signal=sig.name, error=str(exc))
            return False
        return True

    def _transition(self, state: TerminationState) -> None:
        self._log.debug("process.state", previous=self.state.value, state=state.value)
        self.state = state

    def _settle(self, outcome: ExitStatus | WaitError) -> None:
        if not self._exit.done():
            self._exit.set_result(outcome)

    def _wait_error(self, message: str, cause: BaseException | None = None) -> WaitError:
        context = ErrorContext(label=self.label, command=self.command.display(), pid=self.pid)
        return WaitError(message, context=context, cause=cause)


async def _pump(stream: asyncio.StreamReader, log, name: str) -> None:
    """Log every line of ``stream`` until EOF or a read error."""
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            # Line exceeded STREAM_LIMIT; the reader already discarded it.
            log.warning("output.line_too_long", stream=name, limit=STREAM_LIMIT)
            continue
        except OSError as exc:
            log.warning("output.read_failed", stream=name, error=str(exc))
            return

        if not line:
            return
        log.info(line.decode(errors="replace").rstrip("\r\n"), stream=name)


def _spawn_failed(command: CommandSpec, context: ErrorContext, exc: OSError) -> SpawnError:
    if isinstance(exc, FileNotFoundError):
        message = f"Command not found: {command.program}"
    elif isinstance(exc, PermissionError):
        message = f"Permission denied running {command.program}"
    else:
        message = f"Failed to start {command.program}: {exc}"

    error = SpawnError(message, context=context, cause=exc)
    logger.error("process.spawn_failed", label=command.label, **error.to_dict())
    return error
