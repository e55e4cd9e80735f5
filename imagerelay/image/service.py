"""Generation orchestration behind `POST /generate`.

Role in pipeline:
    - Validates the request against the transformation catalog.
    - Seeds the progress store, submits the prediction, and hands the handle
      to `PredictionWaiter`.
    - Schedules deferred cleanup of the progress record once the outcome is
      known, whatever it is.

API integration:
    The HTTP adapter calls `GenerationService.generate` and translates
    `RelayError` subclasses into responses. This module knows nothing about
    HTTP.

Error handling strategy:
    - Bad input -> `InvalidGenerationRequest` (nothing seeded, nothing scheduled).
    - Submission failure -> `SubmissionError` after an `error` record is written.
    - Polling failure -> `GenerationError` from the waiter, passed through.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, List, Optional

from imagerelay.api.multimodal.image_input import DEFAULT_MAX_IMAGE_BYTES, validate_image_reference
from imagerelay.core.cleanup import CleanupScheduler
from imagerelay.core.errors import InvalidGenerationRequest, SubmissionError
from imagerelay.core.progress_store import ProgressStore
from imagerelay.core.progress_types import STATUS_ERROR, STATUS_GENERATING, STATUS_STARTING
from imagerelay.image.client import PredictionClient
from imagerelay.image.transformations import Transformation, get_transformation
from imagerelay.image.waiter import PredictionWaiter


logger = logging.getLogger(__name__)

STARTING_MESSAGE = "Starting image generation..."
GENERATING_MESSAGE = "Generating images..."
SUBMISSION_FAILED_MESSAGE = "Failed to start image generation"


@dataclass(frozen=True)
class GenerationResult:
    generation_id: str
    images: List[str]


def new_generation_id() -> str:
    return uuid.uuid4().hex


class GenerationService:
    """Runs one generation request end to end."""

    def __init__(
        self,
        store: ProgressStore,
        client: PredictionClient,
        waiter: PredictionWaiter,
        cleanup: CleanupScheduler,
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
    ) -> None:
        self.store = store
        self.client = client
        self.waiter = waiter
        self.cleanup = cleanup
        self.max_image_bytes = max_image_bytes

    def validate(self, image: Any, transformation: Any) -> tuple[str, Transformation]:
        """Check request fields and resolve the transformation.

        Raises:
            InvalidGenerationRequest: Missing fields, unknown transformation,
                or an image reference the service cannot use.
        """
        if not isinstance(image, str) or not image.strip() \
                or not isinstance(transformation, str) or not transformation.strip():
            raise InvalidGenerationRequest("Image and transformation are required")

        resolved = get_transformation(transformation.strip())
        if resolved is None:
            raise InvalidGenerationRequest("Invalid transformation")

        return validate_image_reference(image, max_bytes=self.max_image_bytes), resolved

    async def generate(self, image: Any, transformation: Any) -> GenerationResult:
        image_ref, resolved = self.validate(image, transformation)

        generation_id = new_generation_id()
        self.store.set(generation_id, STATUS_STARTING, 0, STARTING_MESSAGE)
        logger.info(
            "Generation %s started (transformation=%s)", generation_id, resolved.id,
            extra={"generation_id": generation_id},
        )

        try:
            handle = await self._submit(generation_id, resolved, image_ref)
            self.store.set(generation_id, STATUS_GENERATING, 10, GENERATING_MESSAGE)
            images = await self.waiter.wait(generation_id, handle)
            return GenerationResult(generation_id=generation_id, images=images)
        finally:
            self.cleanup.schedule(generation_id)

    async def _submit(self, generation_id: str, resolved: Transformation, image_ref: str) -> str:
        try:
            return await self.client.submit(resolved.model, resolved.build_input(image_ref))
        except Exception as exc:
            detail: Optional[str] = getattr(exc, "message", None)
            message = f"{SUBMISSION_FAILED_MESSAGE}: {detail}" if detail else SUBMISSION_FAILED_MESSAGE
            self.store.set(generation_id, STATUS_ERROR, 0, message)
            logger.exception(
                "Submission failed for %s", generation_id,
                extra={"generation_id": generation_id},
            )
            raise SubmissionError(message, generation_id=generation_id) from exc
