"""Update workflow - pull the app image and restart on a new build.

The image's creation time is read before and after the pull. The app is
restarted only when the new time is known and differs from the old one; an
unknown old time with a known new one counts as a change. When the new time
cannot be read at all the running app is left alone.
"""

from __future__ import annotations

from warden.config import AppSpec
from warden.core.errors import UpdateError
from warden.execution.process import SupervisedProcess
from warden.execution.shutdown import ShutdownCoordinator
from warden.logging import get_logger
from warden.tools import Toolbox
from warden.workflows._steps import ensure_running, run_step

logger = get_logger(__name__)


async def run_update(
    app: AppSpec,
    app_process: SupervisedProcess,
    tools: Toolbox,
    shutdown: ShutdownCoordinator,
) -> SupervisedProcess:
    """Pull ``app.image`` and return the app process to supervise next.

    Raises:
        UpdateError: The pull failed.
        SpawnError: The app could not be restarted on the new image.
        WaitError: The old app's exit could not be observed.
        ShutdownRequested: Shutdown was raised during the workflow.
    """
    log = logger.bind(image=app.image)

    before = await tools.runtime.image_creation_time(app.image, shutdown)
    log.info("update.pulling", created=before)
    await run_step(tools, tools.runtime.pull(app.image), shutdown, UpdateError)
    after = await tools.runtime.image_creation_time(app.image, shutdown)

    if after is None or after == before:
        log.info("update.unchanged", created=after)
        return app_process

    log.info("update.restarting_app", old=before, new=after, process=app_process.name)
    await app_process.terminate_and_wait()
    ensure_running(shutdown, "update")

    app_process = await tools.spawn(tools.runtime.run_app(app), shutdown)
    log.info("update.app_restarted", process=app_process.name)
    return app_process
