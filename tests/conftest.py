"""
Shared pytest fixtures and configuration for warden tests.

This module provides:
- Python-backed stand-ins for docker and restic (``FakeRuntime``, ``FakeRestic``)
  that spawn real child processes from ``sys.executable -c ...``
- A ``Toolbox`` with a short termination grace period
- Configuration builders
- Helpers for waiting on files written by child processes

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments.

    def test_something(toolbox, make_config):
        ...
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Ensure warden package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from warden.config import SupervisorConfig
from warden.execution.commands import CommandSpec
from warden.execution.shutdown import ShutdownCoordinator
from warden.tools import ContainerRuntime, Restic, Toolbox

# Grace period used by tests that do not exercise the default.
SHORT_GRACE = 0.5

# An app that runs until it is terminated.
LONG_RUNNING = "import time; time.sleep(60)"


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Tool stand-ins
# =============================================================================


def python_command(label: str, code: str, *args: str, env: dict | None = None) -> CommandSpec:
    """A command running ``code`` in a fresh interpreter."""
    return CommandSpec(label, sys.executable, ("-c", code, *args), env or {})


class FakeRuntime(ContainerRuntime):
    """Container runtime whose app and pull are Python one-liners.

    ``created`` is consumed one value per ``image_creation_time`` call; the
    last value repeats once the list is exhausted.
    """

    def __init__(
        self,
        app_code: str = LONG_RUNNING,
        pull_code: str = "pass",
        created: list[datetime | None] | None = None,
    ) -> None:
        super().__init__(binary=sys.executable)
        self.app_code = app_code
        self.pull_code = pull_code
        self.created = list(created or [None])
        self.app_starts = 0
        self.pulls = 0

    def run_app(self, app):
        self.app_starts += 1
        return python_command("app", self.app_code, env=dict(app.environments))

    def pull(self, image):
        self.pulls += 1
        return python_command("update", self.pull_code, image)

    async def image_creation_time(self, image, shutdown=None):
        if len(self.created) > 1:
            return self.created.pop(0)
        return self.created[0]


class FakeRestic(Restic):
    """restic stand-in: backup runs ``backup_code``, restore creates ``dst``."""

    def __init__(
        self,
        backup_code: str = "pass",
        restore_code: str = "import pathlib, sys; pathlib.Path(sys.argv[1]).mkdir(parents=True)",
        latest: datetime | None = None,
    ) -> None:
        super().__init__(binary=sys.executable)
        self.backup_code = backup_code
        self.restore_code = restore_code
        self.latest = latest
        self.backups: list[Path] = []
        self.restores: list[Path] = []
        self.snapshot_queries = 0

    def backup(self, policy):
        self.backups.append(policy.src)
        return python_command("backup", self.backup_code, str(policy.src))

    def restore(self, policy):
        self.restores.append(policy.dst)
        return python_command("restore", self.restore_code, str(policy.dst))

    async def latest_snapshot_time(self, policy, shutdown=None):
        self.snapshot_queries += 1
        return self.latest


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def python_cmd():
    """Return the ``python_command`` builder."""
    return python_command


@pytest.fixture
def shutdown() -> ShutdownCoordinator:
    return ShutdownCoordinator(name="test")


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def restic() -> FakeRestic:
    return FakeRestic()


@pytest.fixture
def toolbox(runtime, restic) -> Toolbox:
    return Toolbox(runtime=runtime, restic=restic, grace_period=SHORT_GRACE)


@pytest.fixture
def make_config():
    """Build a ``SupervisorConfig`` from keyword sections."""

    def _make(**sections) -> SupervisorConfig:
        data = {"app": {"image": "example/app:latest"}, **sections}
        return SupervisorConfig.model_validate(data)

    return _make


@pytest.fixture
def wait_for_file():
    """Return a coroutine function that polls until ``path`` exists."""

    async def _wait(path: Path, timeout: float = 10.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not path.exists():
            if loop.time() > deadline:
                raise AssertionError(f"{path} was not created within {timeout}s")
            await asyncio.sleep(0.02)

    return _wait
