"""Server-push progress stream for one generation identifier.

Processing flow:
    1. Push the current record immediately when one exists.
    2. Every `interval` seconds read the store and push any record found.
    3. Stop after pushing a terminal record (`complete` / `error`).
    4. Stop silently on client disconnect or when `max_duration` elapses.

Response formatting:
    One SSE frame per push: `data: {"status", "progress", "message"}\\n\\n`.

Error handling strategy:
    Never raises to the transport. Generator cancellation (client gone) ends
    the loop; the pending sleep is cancelled with it.

Cleanup policy:
    The stream does not delete store entries. Removal is left to the
    deferred cleanup scheduled by the generation request, so several viewers
    can observe the same terminal state.
"""

import asyncio
import json
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, Optional

from imagerelay.core.progress_store import ProgressStore
from imagerelay.core.progress_types import ProgressRecord


logger = logging.getLogger(__name__)


def format_event(record: ProgressRecord) -> str:
    return f"data: {json.dumps(record.to_dict())}\n\n"


async def progress_events(
    store: ProgressStore,
    generation_id: str,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    interval: float = 1.0,
    max_duration: Optional[float] = None,
) -> AsyncIterator[str]:
    """Yield SSE frames for `generation_id` until a terminal state.

    Args:
        store: Progress registry to read from.
        generation_id: Identifier returned by `POST /generate`.
        is_disconnected: Async probe for client disconnect (for example
            `Request.is_disconnected`); checked on every tick.
        interval: Seconds between store reads.
        max_duration: Upper bound on stream lifetime; `None` means unbounded.
    """
    deadline = None if max_duration is None else time.monotonic() + max_duration
    pushed = 0
    reason = "terminal"

    try:
        record = store.get(generation_id)
        if record is not None:
            pushed += 1
            yield format_event(record)
            if record.is_terminal:
                return

        while True:
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    reason = "expired"
                    return
                await asyncio.sleep(min(interval, remaining))
            else:
                await asyncio.sleep(interval)

            if is_disconnected is not None and await is_disconnected():
                reason = "disconnected"
                return

            record = store.get(generation_id)
            if record is None:
                continue

            pushed += 1
            yield format_event(record)
            if record.is_terminal:
                return

    except (asyncio.CancelledError, GeneratorExit, BrokenPipeError, ConnectionResetError):
        reason = "cancelled"
        raise
    finally:
        logger.info(
            "Progress stream for %s closed (%s) after %d events",
            generation_id, reason, pushed,
            extra={"generation_id": generation_id},
        )
