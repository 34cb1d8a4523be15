"""Restore workflow - bring back persisted state before the first start.

Each restore policy is evaluated once. Eligible restores run concurrently
(their destinations are disjoint paths) and the startup fails if any of them
fails.

    policies ──► eligible? ──► spawn all ──► wait all ──► any failed? ──► RestoreError
                    │
                    └─ dst exists and strategy if_missing ──► skip
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from warden.config import RestorePolicy, RestoreStrategy
from warden.core.errors import ErrorContext, RestoreError, ShutdownRequested
from warden.execution.process import SupervisedProcess
from warden.execution.shutdown import ShutdownCoordinator
from warden.logging import get_logger
from warden.tools import Toolbox
from warden.workflows._steps import ensure_running, retire

logger = get_logger(__name__)


def needs_restore(policy: RestorePolicy) -> bool:
    if policy.strategy == RestoreStrategy.IF_MISSING and policy.dst.exists():
        logger.info("restore.skipped", dst=str(policy.dst), reason="destination exists")
        return False
    return True


async def restore_all(
    policies: Sequence[RestorePolicy],
    tools: Toolbox,
    shutdown: ShutdownCoordinator,
) -> None:
    """Run every eligible restore concurrently and wait for all of them.

    Raises:
        SpawnError: A restore could not be started (the others are stopped).
        RestoreError: At least one restore failed.
        ShutdownRequested: Shutdown was raised while restoring.
    """
    eligible = [policy for policy in policies if needs_restore(policy)]
    if not eligible:
        return

    ensure_running(shutdown, "restore")

    processes: list[SupervisedProcess] = []
    try:
        for policy in eligible:
            logger.info("restore.started", dst=str(policy.dst), snapshot=policy.snapshot)
            processes.append(await tools.spawn(tools.restic.restore(policy), shutdown))
    except Exception:
        await asyncio.gather(*(retire(process) for process in processes))
        raise

    results = await asyncio.gather(
        *(process.wait() for process in processes),
        return_exceptions=True,
    )

    if shutdown.is_raised():
        raise ShutdownRequested("Shutting down while restoring backup")

    failures: list[str] = []
    for policy, process, result in zip(eligible, processes, results, strict=True):
        if isinstance(result, Exception):
            failures.append(f"{policy.dst}: {result}")
        elif not result.success:
            failures.append(f"{policy.dst}: restore {result}")
        else:
            logger.info("restore.completed", dst=str(policy.dst), process=process.name)

    if failures:
        raise RestoreError(
            f"Restore failed for {len(failures)} of {len(eligible)} destination(s)",
            context=ErrorContext(label="restore", metadata={"failures": failures}),
        )
