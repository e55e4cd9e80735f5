"""Deferred removal of finished generations from the progress store.

Processing flow:
    1. `POST /generate` finishes (success or failure) and calls `schedule`.
    2. A task sleeps `delay` seconds, then deletes the store entry.
    3. The task forgets itself once done.

Cancellation:
    - `cancel(generation_id)` drops a pending cleanup.
    - Scheduling an id that already has a pending cleanup replaces it.
    - `shutdown()` cancels everything; called from the application lifespan.

This is a safety net. Entries are already terminal when scheduled, so a
missed cleanup only leaks one small record until process exit.
"""

import asyncio
import logging
from typing import Dict

from imagerelay.core.progress_store import ProgressStore


logger = logging.getLogger(__name__)


class CleanupScheduler:
    """Owns one delayed-delete task per generation identifier."""

    def __init__(self, store: ProgressStore, delay: float = 5.0) -> None:
        self.store = store
        self.delay = delay
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, generation_id: str, delay: float | None = None) -> asyncio.Task:
        """Schedule deletion of `generation_id` on the running event loop."""
        self.cancel(generation_id)
        wait = self.delay if delay is None else delay
        task = asyncio.get_running_loop().create_task(
            self._expire(generation_id, wait),
            name=f"cleanup-{generation_id}",
        )
        self._tasks[generation_id] = task
        task.add_done_callback(lambda done, gid=generation_id: self._forget(gid, done))
        return task

    def cancel(self, generation_id: str) -> bool:
        task = self._tasks.pop(generation_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def pending(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _expire(self, generation_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        if self.store.delete(generation_id):
            logger.debug("Cleared progress for %s", generation_id)
        else:
            logger.debug("Progress for %s already cleared", generation_id)

    def _forget(self, generation_id: str, task: asyncio.Task) -> None:
        # A replacement task may already own this id.
        if self._tasks.get(generation_id) is task:
            del self._tasks[generation_id]
