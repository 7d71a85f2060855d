import asyncio
import logging
from collections.abc import Coroutine

log = logging.getLogger("companion")


class BackgroundTasks:
    """Fire-and-forget coroutines that never propagate their failures.

    Holds a strong reference to each running task so the event loop
    cannot garbage-collect it mid-flight.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine, name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(self._guarded(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(self, coro: Coroutine, name: str | None):
        try:
            return await coro
        except asyncio.CancelledError:
            log.debug("background task %s cancelled", name)
            raise
        except Exception as e:
            log.warning("background task %s failed: %s", name, e)
            return None

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for pending tasks; cancel whatever is left after `timeout`."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        _, still = await asyncio.wait(pending, timeout=timeout)
        for task in still:
            task.cancel()
        if still:
            await asyncio.gather(*still, return_exceptions=True)
