"""Console spinner shown while the server starts in production mode."""

from __future__ import annotations

import asyncio
import logging

from rich.console import Console

logger = logging.getLogger(__name__)


class StartupSignal:
    """Single-use handle that stops the spinner task."""

    def __init__(self, waiter: asyncio.Future, task: asyncio.Task):
        self._waiter = waiter
        self.task = task

    def send(self) -> bool:
        if self._waiter.done():
            logger.warning("Spinner channel is closed")
            return False
        self._waiter.set_result(None)
        return True


async def _spin(waiter: asyncio.Future, console: Console) -> None:
    with console.status("Starting...", spinner="dots"):
        await asyncio.wait({waiter})


def try_run_spinner(enabled: bool, console: Console | None = None) -> StartupSignal | None:
    """Start the spinner task if ``enabled``; must be called inside a running loop."""
    if not enabled:
        logger.debug("Starting server, this might take a few minutes...")
        return None
    loop = asyncio.get_running_loop()
    waiter = loop.create_future()
    task = loop.create_task(_spin(waiter, console or Console()))
    return StartupSignal(waiter, task)


def notify_ready(signal: StartupSignal | None) -> None:
    if signal is not None:
        signal.send()
