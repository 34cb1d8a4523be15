"""Tests for SupervisedProcess - spawn, wait and escalating termination.

Tests:
    - Natural exit with success and failure codes
    - Concurrent, repeated and cancelled waiters
    - Spawn failures for missing and non-executable programs
    - Local termination and shutdown-driven termination
    - SIGKILL escalation after the grace period
    - Output pumping, including overlong lines and pipes held by descendants
"""

import asyncio
import contextlib
import os
import signal

import pytest

from warden.core.errors import ErrorCategory, SpawnError
from warden.execution import CommandSpec, ExitStatus, SupervisedProcess, TerminationState

SHORT_GRACE = 0.5

IGNORE_SIGTERM = (
    "import pathlib, signal, sys, time\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "pathlib.Path(sys.argv[1]).touch()\n"
    "time.sleep(60)\n"
)


async def spawn(command, shutdown, grace_period=SHORT_GRACE):
    return await SupervisedProcess.spawn(command, shutdown, grace_period=grace_period)


class TestExitStatus:
    """ExitStatus conventions."""

    def test_success(self):
        status = ExitStatus(0)
        assert status.success
        assert status.signal is None
        assert status.exit_code == 0
        assert str(status) == "exit code 0"

    def test_failure_code_is_mirrored(self):
        status = ExitStatus(42)
        assert not status.success
        assert status.exit_code == 42

    def test_signal_death(self):
        status = ExitStatus(-signal.SIGKILL)
        assert status.signal == signal.SIGKILL
        assert status.exit_code == 1
        assert str(status) == "killed by SIGKILL"


class TestNaturalExit:
    """Children that exit on their own."""

    @pytest.mark.asyncio
    async def test_successful_command(self, python_cmd, shutdown):
        process = await spawn(python_cmd("job", "print('hello')"), shutdown)
        status = await process.wait()

        assert status == ExitStatus(0)
        assert process.returncode == 0
        assert process.done()
        assert process.state == TerminationState.EXITED

    @pytest.mark.asyncio
    async def test_failed_command(self, python_cmd, shutdown):
        process = await spawn(python_cmd("job", "raise SystemExit(42)"), shutdown)
        status = await process.wait()

        assert status.returncode == 42
        assert not status.success

    @pytest.mark.asyncio
    async def test_returncode_none_while_running(self, python_cmd, shutdown):
        process = await spawn(python_cmd("job", "import time; time.sleep(60)"), shutdown)
        try:
            assert process.returncode is None
            assert not process.done()
            assert process.pid > 0
            assert process.name == f"job({process.pid})"
        finally:
            await process.terminate_and_wait()

    @pytest.mark.asyncio
    async def test_environment_overlay_reaches_child(self, python_cmd, shutdown):
        code = "import os, sys; sys.exit(0 if os.environ['WARDEN_TEST_VALUE'] == 'v1' else 3)"
        command = python_cmd("job", code, env={"WARDEN_TEST_VALUE": "v1"})

        process = await spawn(command, shutdown)
        assert (await process.wait()).success


class TestWaiters:
    """The exit slot is written once and read by any number of waiters."""

    @pytest.mark.asyncio
    async def test_concurrent_waiters_see_same_status(self, python_cmd, shutdown):
        process = await spawn(python_cmd("job", "import time; time.sleep(0.2); raise SystemExit(7)"), shutdown)

        results = await asyncio.gather(*(process.wait() for _ in range(5)))

        assert {r.returncode for r in results} == {7}

    @pytest.mark.asyncio
    async def test_repeated_wait_is_stable(self, python_cmd, shutdown):
        process = await spawn(python_cmd("job", "raise SystemExit(3)"), shutdown)

        first = await process.wait()
        second = await process.wait()

        assert first is second

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_disturb_child(self, python_cmd, shutdown):
        process = await spawn(python_cmd("job", "import time; time.sleep(0.3)"), shutdown)

        waiter = asyncio.create_task(process.wait())
        await asyncio.sleep(0.05)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        status = await asyncio.wait_for(process.wait(), timeout=5)
        assert status.success
        assert process.state == TerminationState.EXITED


class TestSpawnErrors:
    """Spawn failures are raised by spawn(), never deferred to wait()."""

    @pytest.mark.asyncio
    async def test_missing_binary(self, shutdown):
        command = CommandSpec("backup", "/nonexistent/warden-test-binary", ("backup",))

        with pytest.raises(SpawnError) as exc_info:
            await spawn(command, shutdown)

        error = exc_info.value
        assert error.category == ErrorCategory.SPAWN
        assert error.context.label == "backup"
        assert "Command not found" in error.message
        assert isinstance(error.__cause__, FileNotFoundError)

    @pytest.mark.asyncio
    async def test_not_executable(self, tmp_path, shutdown):
        script = tmp_path / "tool.sh"
        script.write_text("#!/bin/sh\nexit 0\n")
        script.chmod(0o644)

        with pytest.raises(SpawnError) as exc_info:
            await spawn(CommandSpec("update", str(script)), shutdown)

        assert "Permission denied" in exc_info.value.message


class TestTermination:
    """Local and global termination with SIGTERM to SIGKILL escalation."""

    @pytest.mark.asyncio
    async def test_terminate_and_wait_sends_sigterm(self, python_cmd, shutdown):
        process = await spawn(python_cmd("app", "import time; time.sleep(60)"), shutdown)

        status = await asyncio.wait_for(process.terminate_and_wait(), timeout=5)

        assert status.signal == signal.SIGTERM
        assert process.state == TerminationState.EXITED
        assert not shutdown.is_raised()

    @pytest.mark.asyncio
    async def test_terminate_after_exit_returns_natural_status(self, python_cmd, shutdown):
        process = await spawn(python_cmd("app", "raise SystemExit(5)"), shutdown)
        await process.wait()

        status = await process.terminate_and_wait()

        assert status.returncode == 5

    @pytest.mark.asyncio
    async def test_shutdown_terminates_every_child(self, python_cmd, shutdown):
        processes = [
            await spawn(python_cmd(f"job{i}", "import time; time.sleep(60)"), shutdown)
            for i in range(3)
        ]

        shutdown.raise_shutdown("test")
        results = await asyncio.wait_for(
            asyncio.gather(*(p.wait() for p in processes)), timeout=5
        )

        assert all(r.signal == signal.SIGTERM for r in results)

    @pytest.mark.asyncio
    async def test_child_spawned_after_shutdown_is_terminated(self, python_cmd, shutdown):
        shutdown.raise_shutdown("test")
        process = await spawn(python_cmd("job", "import time; time.sleep(60)"), shutdown)

        status = await asyncio.wait_for(process.wait(), timeout=5)

        assert not status.success

    @pytest.mark.asyncio
    async def test_sigterm_ignored_escalates_to_sigkill(self, tmp_path, python_cmd, shutdown, wait_for_file):
        ready = tmp_path / "ready"
        process = await spawn(python_cmd("app", IGNORE_SIGTERM, str(ready)), shutdown, grace_period=0.3)
        await wait_for_file(ready)

        loop = asyncio.get_running_loop()
        started = loop.time()
        status = await asyncio.wait_for(process.terminate_and_wait(), timeout=5)
        elapsed = loop.time() - started

        assert status.signal == signal.SIGKILL
        assert process.state == TerminationState.EXITED
        assert elapsed >= 0.3

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_default_grace_period_is_five_seconds(self, tmp_path, python_cmd, shutdown, wait_for_file):
        ready = tmp_path / "ready"
        process = await SupervisedProcess.spawn(python_cmd("app", IGNORE_SIGTERM, str(ready)), shutdown)
        await wait_for_file(ready)

        loop = asyncio.get_running_loop()
        started = loop.time()
        shutdown.raise_shutdown("test")
        status = await asyncio.wait_for(process.wait(), timeout=15)
        elapsed = loop.time() - started

        assert status.signal == signal.SIGKILL
        assert 5.0 <= elapsed < 10


class TestOutput:
    """Output pumps keep draining the child's pipes."""

    @pytest.mark.asyncio
    async def test_large_output_does_not_block_child(self, python_cmd, shutdown):
        code = "import sys\nfor i in range(5000):\n    print('line', i, 'x' * 60)\n    print('err', i, 'x' * 60, file=sys.stderr)\n"
        process = await spawn(python_cmd("job", code), shutdown)

        status = await asyncio.wait_for(process.wait(), timeout=20)

        assert status.success

    @pytest.mark.asyncio
    async def test_overlong_line_is_skipped(self, python_cmd, shutdown):
        code = "import sys\nsys.stdout.write('x' * (3 * 1024 * 1024) + '\\n')\nprint('after')\n"
        process = await spawn(python_cmd("job", code), shutdown)

        status = await asyncio.wait_for(process.wait(), timeout=20)

        assert status.success

    @pytest.mark.asyncio
    async def test_no_trailing_newline(self, python_cmd, shutdown):
        process = await spawn(python_cmd("job", "import sys; sys.stdout.write('partial')"), shutdown)
        assert (await asyncio.wait_for(process.wait(), timeout=5)).success

    @pytest.mark.asyncio
    async def test_pipe_held_by_descendant_does_not_block_exit(self, python_cmd, shutdown):
        code = "import subprocess, sys\nsubprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
        process = await spawn(python_cmd("job", code), shutdown)
        try:
            status = await asyncio.wait_for(process.wait(), timeout=10)

            assert status.success
            assert all(pump.done() for pump in process._pumps)
        finally:
            # The descendant shares the child's process group.
            with contextlib.suppress(ProcessLookupError):
                os.killpg(process.pid, signal.SIGKILL)
