from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Set

log = logging.getLogger("workers.background")


class BackgroundRunner:
    """
    Fire-and-forget coroutines on the running loop.

    Failures are logged, never raised to whoever scheduled the work.
    Tasks are referenced until done so the loop cannot drop them.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable[object], name: str = "background") -> asyncio.Task:
        async def _kick() -> None:
            try:
                await coro
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("background_coro_failed", extra={"job": name})

        task = asyncio.create_task(_kick(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for everything scheduled so far, including work they schedule."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
