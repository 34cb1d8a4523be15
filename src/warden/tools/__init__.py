"""
External tool adapters: the container runtime and restic.

``Toolbox`` bundles both with the grace period used for every supervised
command, so workflows receive one object instead of four.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from warden.core.settings import WardenSettings
from warden.execution.commands import CommandSpec
from warden.execution.process import GRACE_PERIOD_SECONDS, SupervisedProcess
from warden.execution.shutdown import ShutdownCoordinator
from warden.tools.container import ContainerRuntime, parse_image_created
from warden.tools.restic import Restic, parse_latest_snapshot


@dataclass
class Toolbox:
    """Tool adapters plus the supervision settings workflows spawn with."""

    runtime: ContainerRuntime = field(default_factory=ContainerRuntime)
    restic: Restic = field(default_factory=Restic)
    grace_period: float = GRACE_PERIOD_SECONDS

    @classmethod
    def from_settings(cls, settings: WardenSettings) -> Toolbox:
        return cls(
            runtime=ContainerRuntime(settings.container_runtime),
            restic=Restic(settings.restic_binary),
            grace_period=settings.grace_period_seconds,
        )

    async def spawn(self, command: CommandSpec, shutdown: ShutdownCoordinator) -> SupervisedProcess:
        return await SupervisedProcess.spawn(command, shutdown, grace_period=self.grace_period)


__all__ = [
    "Toolbox",
    "ContainerRuntime",
    "Restic",
    "parse_image_created",
    "parse_latest_snapshot",
]
