"""Short read-only tool invocations (inspect, snapshot listing).

Queries are not supervised processes: they finish in seconds, their output is
parsed rather than logged, and a failure only means "unknown". The child is
killed if the query times out, shutdown is raised, or the caller is cancelled.
"""

from __future__ import annotations

import asyncio

from warden.execution.commands import CommandSpec
from warden.execution.shutdown import ShutdownCoordinator
from warden.logging import get_logger

logger = get_logger(__name__)

QUERY_TIMEOUT_SECONDS = 60.0


async def run_query(
    command: CommandSpec,
    shutdown: ShutdownCoordinator | None = None,
    timeout: float = QUERY_TIMEOUT_SECONDS,
) -> bytes | None:
    """Run ``command`` and return its stdout, or None if it could not complete.

    With a ``shutdown`` coordinator the query is abandoned as soon as shutdown
    is raised.
    """
    log = logger.bind(label=command.label, command=command.display())

    try:
        process = await asyncio.create_subprocess_exec(
            *command.argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=command.build_env(),
        )
    except OSError as exc:
        log.warning("query.spawn_failed", error=str(exc))
        return None

    query = asyncio.ensure_future(process.communicate())
    waiters = [query]
    if shutdown is not None:
        waiters.append(asyncio.ensure_future(shutdown.wait_raised()))

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        if query not in done:
            if done:
                log.info("query.interrupted", reason=shutdown.reason)
            else:
                log.warning("query.timed_out", timeout=timeout)
            return None
        stdout, stderr = query.result()
    finally:
        pending = [waiter for waiter in waiters if not waiter.done()]
        for waiter in pending:
            waiter.cancel()
        if process.returncode is None:
            process.kill()
            await process.wait()
        await asyncio.gather(*pending, return_exceptions=True)

    if process.returncode != 0:
        log.warning(
            "query.failed",
            returncode=process.returncode,
            stderr=stderr.decode(errors="replace").strip()[-500:],
        )
        return None

    return stdout
