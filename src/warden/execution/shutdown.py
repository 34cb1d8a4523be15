"""Shutdown coordination - a one-way, broadcast cancellation signal.

Every task that can wait for a long time (timer sleeps, child process exit
monitors) races its wait against ``ShutdownCoordinator.wait_raised()``. The
coordinator transitions from "running" to "raised" exactly once and never
resets, so a late awaiter still wakes immediately.

All tasks run on one event loop thread; the coordinator needs no lock.

Example:
    >>> shutdown = ShutdownCoordinator()
    >>> install_signal_handlers(shutdown)
    >>> await shutdown.wait_raised()
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Iterable

from warden.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """One-way flag that wakes every current and future awaiter."""

    def __init__(self, name: str = "supervisor") -> None:
        self.name = name
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def reason(self) -> str | None:
        """Reason given by the first ``raise_shutdown`` call."""
        return self._reason

    def raise_shutdown(self, reason: str = "") -> bool:
        """Raise the flag. Returns False if it was already raised."""
        if self._event.is_set():
            logger.debug("shutdown.already_raised", coordinator=self.name, reason=reason)
            return False

        self._reason = reason or "requested"
        self._event.set()
        logger.info("shutdown.raised", coordinator=self.name, reason=self._reason)
        return True

    def is_raised(self) -> bool:
        return self._event.is_set()

    async def wait_raised(self) -> None:
        """Suspend until the flag is raised."""
        await self._event.wait()

    def __repr__(self) -> str:
        state = "raised" if self.is_raised() else "running"
        return f"ShutdownCoordinator({self.name!r}, {state})"


def install_signal_handlers(
    coordinator: ShutdownCoordinator,
    loop: asyncio.AbstractEventLoop | None = None,
    signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
) -> list[signal.Signals]:
    """Raise ``coordinator`` when the process receives one of ``signals``.

    Must be called from the thread running ``loop``. Returns the signals that
    were installed, for ``remove_signal_handlers``.
    """
    loop = loop or asyncio.get_running_loop()
    installed: list[signal.Signals] = []

    for sig in signals:
        loop.add_signal_handler(sig, _on_signal, coordinator, sig)
        installed.append(sig)

    return installed


def remove_signal_handlers(
    signals: Iterable[signal.Signals],
    loop: asyncio.AbstractEventLoop | None = None,
) -> None:
    loop = loop or asyncio.get_running_loop()
    for sig in signals:
        loop.remove_signal_handler(sig)


def _on_signal(coordinator: ShutdownCoordinator, sig: signal.Signals) -> None:
    name = signal.Signals(sig).name
    if coordinator.is_raised():
        logger.info("signal.ignored", signal=name, reason="already shutting down")
        return
    logger.info("signal.received", signal=name)
    coordinator.raise_shutdown(f"received {name}")
