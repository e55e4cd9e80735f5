"""Bounded polling of one external prediction.

Processing flow:
    1. Poll `client.get_status(handle)` (attempt 1..max_attempts).
    2. Map the snapshot to a local progress update via `translate_status`.
    3. Write the update to the progress store.
    4. Stop on terminal success/failure; otherwise sleep and poll again.
    5. After the last attempt without a terminal state, fail with a timeout.

State machine (external -> local):
    processing            -> processing, attempt-derived progress
    succeeded + output    -> complete, 100 (after URL validation)
    succeeded, no output  -> error ("invalid response format")
    failed / canceled     -> error, external message when present
    anything else         -> generating, attempt-derived progress

Error handling strategy:
    Every failure writes an `error` record before `GenerationError` is raised,
    so open progress streams observe the same terminal state.

Determinism:
    `translate_status` and `filter_image_urls` are pure. The loop waits
    through an injectable `sleep` so tests run without real delays.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional
from urllib.parse import urlparse

from imagerelay.core.errors import GenerationError, GenerationTimeout
from imagerelay.core.progress_store import ProgressStore
from imagerelay.core.progress_types import (
    STATUS_COMPLETE,
    STATUS_ERROR,
    STATUS_GENERATING,
    STATUS_PROCESSING,
    ProgressRecord,
)
from imagerelay.image.client import PredictionClient, PredictionSnapshot


logger = logging.getLogger(__name__)

OUTCOME_CONTINUE = "continue"
OUTCOME_SUCCESS = "success"
OUTCOME_FAILURE = "failure"

TIMEOUT_MESSAGE = "Generation timed out"
INVALID_RESPONSE_MESSAGE = "Invalid response format from prediction service"
NO_VALID_IMAGES_MESSAGE = "No valid images were generated"
COMPLETE_MESSAGE = "Generation complete"


@dataclass(frozen=True)
class Transition:
    """Result of mapping one external snapshot to local state.

    Attributes:
        record: Progress record to write for this attempt.
        outcome: `continue`, `success`, or `failure`.
        output: Raw external output on `success`, before URL filtering.
    """

    record: ProgressRecord
    outcome: str
    output: Any = None

    @property
    def error_message(self) -> Optional[str]:
        return self.record.message if self.outcome == OUTCOME_FAILURE else None


def attempt_progress(attempt: int, max_attempts: int) -> float:
    if max_attempts <= 0:
        return 100.0
    return float(min(max(attempt / max_attempts * 100, 0), 100))


def _has_output(output: Any) -> bool:
    if output is None:
        return False
    if isinstance(output, (str, list, tuple)):
        return len(output) > 0
    return True


def translate_status(snapshot: PredictionSnapshot, attempt: int, max_attempts: int) -> Transition:
    """Map an external snapshot to the local progress update for `attempt`."""
    progress = attempt_progress(attempt, max_attempts)
    status = snapshot.status

    if status == "processing":
        return Transition(
            ProgressRecord(STATUS_PROCESSING, progress, "Processing images..."),
            OUTCOME_CONTINUE,
        )

    if status == "succeeded":
        if not _has_output(snapshot.output):
            return Transition(
                ProgressRecord(STATUS_ERROR, progress, INVALID_RESPONSE_MESSAGE),
                OUTCOME_FAILURE,
            )
        return Transition(
            ProgressRecord(STATUS_COMPLETE, 100.0, COMPLETE_MESSAGE),
            OUTCOME_SUCCESS,
            output=snapshot.output,
        )

    if status in ("failed", "canceled"):
        default = "Image generation failed" if status == "failed" else "Image generation was canceled"
        return Transition(
            ProgressRecord(STATUS_ERROR, progress, snapshot.error or default),
            OUTCOME_FAILURE,
        )

    return Transition(
        ProgressRecord(STATUS_GENERATING, progress, "Generating images..."),
        OUTCOME_CONTINUE,
    )


def is_image_url(value: Any) -> bool:
    """True for non-empty scheme-prefixed URLs (`http(s)` with a host, or `data:` with a payload)."""
    if not isinstance(value, str) or not value.strip():
        return False
    parsed = urlparse(value.strip())
    if parsed.scheme in ("http", "https"):
        return bool(parsed.netloc)
    if parsed.scheme == "data":
        _, sep, payload = value.partition(",")
        return bool(sep and payload.strip())
    return False


def filter_image_urls(output: Any) -> List[str]:
    """Normalize external output to a list and keep only valid image URLs."""
    if isinstance(output, str):
        candidates = [output]
    elif isinstance(output, (list, tuple)):
        candidates = list(output)
    else:
        candidates = []
    return [item.strip() for item in candidates if is_image_url(item)]


class PredictionWaiter:
    """Drives the polling loop for one prediction and records its progress."""

    def __init__(
        self,
        client: PredictionClient,
        store: ProgressStore,
        interval: float = 2.0,
        max_attempts: int = 30,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.store = store
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def wait(self, generation_id: str, handle: str) -> List[str]:
        """Poll `handle` until it resolves.

        Returns:
            Validated image URLs (at least one).

        Raises:
            GenerationError: External failure/cancel, invalid or empty output,
                or a transport error while polling.
            GenerationTimeout: No terminal state after `max_attempts` polls.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                snapshot = await self.client.get_status(handle)
            except Exception as exc:
                message = getattr(exc, "message", None) or "Failed to check generation status"
                self._record(generation_id, ProgressRecord(
                    STATUS_ERROR, attempt_progress(attempt, self.max_attempts), message,
                ))
                raise GenerationError(message, generation_id=generation_id) from exc

            transition = translate_status(snapshot, attempt, self.max_attempts)
            logger.debug(
                "Prediction %s attempt %d/%d: %s",
                handle, attempt, self.max_attempts, snapshot.status,
            )

            if transition.outcome == OUTCOME_SUCCESS:
                return self._finish(generation_id, transition, attempt)

            self._record(generation_id, transition.record)

            if transition.outcome == OUTCOME_FAILURE:
                logger.warning(
                    "Prediction %s failed at attempt %d: %s",
                    handle, attempt, transition.error_message,
                    extra={"generation_id": generation_id},
                )
                raise GenerationError(transition.error_message, generation_id=generation_id)

            if attempt < self.max_attempts:
                await self._sleep(self.interval)

        self._record(generation_id, ProgressRecord(STATUS_ERROR, 100.0, TIMEOUT_MESSAGE))
        logger.warning(
            "Prediction %s timed out after %d attempts", handle, self.max_attempts,
            extra={"generation_id": generation_id},
        )
        raise GenerationTimeout(TIMEOUT_MESSAGE, generation_id=generation_id)

    def _finish(self, generation_id: str, transition: Transition, attempt: int) -> List[str]:
        images = filter_image_urls(transition.output)
        if not images:
            self._record(generation_id, ProgressRecord(
                STATUS_ERROR, attempt_progress(attempt, self.max_attempts), NO_VALID_IMAGES_MESSAGE,
            ))
            raise GenerationError(NO_VALID_IMAGES_MESSAGE, generation_id=generation_id)

        self._record(generation_id, transition.record)
        logger.info(
            "Generation %s complete with %d images after %d polls",
            generation_id, len(images), attempt,
            extra={"generation_id": generation_id},
        )
        return images

    def _record(self, generation_id: str, record: ProgressRecord) -> None:
        self.store.put(generation_id, record)
