"""Container runtime commands for warden.

Drives the application container through the ``docker`` CLI (or any CLI
with the same interface, such as ``podman``). No ``docker-py`` dependency:
commands are plain argv lists run as supervised subprocesses.

Key Concepts:
    ContainerRuntime: Builds the ``run`` and ``pull`` commands and queries
        an image's creation time.
    parse_image_created: Extracts ``Created`` from ``image inspect`` output.

Architecture Decisions:
    - ``run --rm`` in the foreground: the container lives exactly as long
      as the supervised CLI process, so stopping the process stops the
      container (the CLI proxies SIGTERM to it).
    - Environment values never appear on the command line. Each variable is
      passed as ``-e NAME`` and its value travels in the CLI's own
      environment, where the runtime picks it up.
    - No ``-t``/``-i``: stdout and stderr are pipes read by the supervisor.
    - An unknown creation time (missing image, malformed output, CLI
      failure) is ``None``, never an exception.

Tags:
    container, docker, podman, image, update, subprocess
"""

from __future__ import annotations

import json
from datetime import datetime

from warden.config import AppSpec
from warden.core.timestamps import parse_timestamp
from warden.execution.commands import CommandSpec
from warden.execution.shutdown import ShutdownCoordinator
from warden.logging import get_logger
from warden.tools._query import run_query

logger = get_logger(__name__)


class ContainerRuntime:
    """Commands for the container runtime CLI.

    Parameters
    ----------
    binary
        Runtime executable (``docker``, ``podman`` or a full path).
    """

    def __init__(self, binary: str = "docker") -> None:
        self.binary = binary

    def run_app(self, app: AppSpec) -> CommandSpec:
        """Command that runs the application container in the foreground."""
        args: list[str] = ["run", "--rm"]

        for key in sorted(app.environments):
            args += ["-e", key]
        for volume in app.volumes:
            args += ["-v", volume]
        for port in app.ports:
            args += ["-p", port]
        for cap in app.cap_add:
            args += ["--cap-add", cap]
        if app.network_mode is not None:
            args += ["--network", app.network_mode.value]

        args.append(app.image)
        args.extend(app.args)

        return CommandSpec("app", self.binary, tuple(args), dict(app.environments))

    def pull(self, image: str) -> CommandSpec:
        return CommandSpec("update", self.binary, ("pull", image))

    def inspect(self, image: str) -> CommandSpec:
        return CommandSpec("inspect", self.binary, ("image", "inspect", image))

    async def image_creation_time(
        self, image: str, shutdown: ShutdownCoordinator | None = None
    ) -> datetime | None:
        """Creation time of the local ``image``, or None when unknown."""
        output = await run_query(self.inspect(image), shutdown)
        if output is None:
            logger.info("image.created_unknown", image=image, reason="inspect failed")
            return None
        created = parse_image_created(output)
        logger.debug("image.created", image=image, created=created)
        return created


def parse_image_created(payload: bytes | str) -> datetime | None:
    """Return ``Created`` of the first record of ``image inspect`` JSON output."""
    try:
        records = json.loads(payload)
    except ValueError as exc:
        logger.info("image.created_unknown", reason=f"malformed JSON: {exc}")
        return None

    if not isinstance(records, list) or not records:
        logger.info("image.created_unknown", reason="no image record")
        return None

    record = records[0]
    created = record.get("Created") if isinstance(record, dict) else None
    if not isinstance(created, str):
        logger.info("image.created_unknown", reason="record has no Created field")
        return None

    try:
        return parse_timestamp(created)
    except ValueError as exc:
        logger.info("image.created_unknown", reason=f"bad timestamp {created!r}: {exc}")
        return None
