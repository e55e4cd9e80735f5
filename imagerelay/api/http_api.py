"""
HTTP API adapter for the image relay.

Architectural role:
- Expose the generation and progress-stream contracts consumed by the browser UI.
- Enforce adapter-level input parsing.
- Delegate generation work to `imagerelay.image.service.GenerationService`.
- Shape results into JSON responses or an SSE stream.

Endpoint responsibilities:
- `POST /generate`: parse `{image, transformation}`, run the generation, and
  return `{images, generationId}`.
- `GET /progress?id=...`: stream progress records for one generation.
- `GET /transformations`: list the transformation catalog.
- `GET /health`: liveness plus the number of tracked generations.

Input validation behavior:
- Non-JSON or non-object body -> HTTP 400.
- Missing fields / unknown transformation / unusable image -> HTTP 400.
- Missing `id` on `/progress` -> HTTP 400, no stream opened.

Error handling strategy:
- `RelayError` subclasses are translated by handlers in `imagerelay.core.errors`.
- The progress stream never raises; it ends quietly on disconnect.

Side effects:
- One `ProgressStore` per application, shared by generation and streaming.
- Deferred cleanup tasks are cancelled on application shutdown.
"""

import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from imagerelay.core.cleanup import CleanupScheduler
from imagerelay.core.errors import InvalidGenerationRequest, register_exception_handlers
from imagerelay.core.progress_store import ProgressStore
from imagerelay.core.progress_stream import progress_events
from imagerelay.image.client import PredictionClient, ReplicateClient
from imagerelay.image.provider_config import RelayConfig
from imagerelay.image.service import GenerationService
from imagerelay.image.transformations import TRANSFORMATIONS
from imagerelay.image.waiter import PredictionWaiter


logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ============================================================
# Response Schemas
# ============================================================

class GenerationResponse(BaseModel):
    images: List[str]
    generationId: str


class TransformationInfo(BaseModel):
    id: str
    label: str
    model: str


class TransformationList(BaseModel):
    object: str = "list"
    data: List[TransformationInfo]


class HealthResponse(BaseModel):
    status: str
    activeGenerations: int


def create_app(
    config: RelayConfig | None = None,
    store: ProgressStore | None = None,
    client: PredictionClient | None = None,
) -> FastAPI:
    """
    Build the relay application.

    All collaborators are injectable so tests can use a fresh store and a
    scripted prediction client per app.
    """
    config = config or RelayConfig()
    store = store if store is not None else ProgressStore()
    if client is None:
        client = ReplicateClient(
            timeout_seconds=config.http_timeout_seconds,
            retry_attempts=config.http_retry_attempts,
            backoff_seconds=config.http_backoff_seconds,
        )

    cleanup = CleanupScheduler(store, delay=config.cleanup_delay_seconds)
    waiter = PredictionWaiter(
        client,
        store,
        interval=config.poll_interval_seconds,
        max_attempts=config.max_poll_attempts,
    )
    service = GenerationService(
        store, client, waiter, cleanup, max_image_bytes=config.max_image_bytes,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await cleanup.shutdown()

    app = FastAPI(title="imagerelay", lifespan=lifespan)
    app.state.config = config
    app.state.store = store
    app.state.cleanup = cleanup
    app.state.service = service
    register_exception_handlers(app)

    # ============================================================
    # Generation
    # ============================================================

    @app.post("/generate", response_model=GenerationResponse)
    async def generate(request: Request):
        """
        Run one generation and return its images.

        Response formatting:
        - 200 `{images: [...], generationId}`
        - 400 `{error}` for invalid input
        - 500 `{error, generationId}` for submission or generation failures
        """
        try:
            body = await request.json()
        except ValueError:
            raise InvalidGenerationRequest("Request body must be valid JSON")

        if not isinstance(body, dict):
            raise InvalidGenerationRequest("Image and transformation are required")

        if config.debug:
            logger.debug(
                "Generate request: transformation=%r image=%.80r",
                body.get("transformation"), body.get("image"),
            )

        result = await service.generate(body.get("image"), body.get("transformation"))
        return GenerationResponse(images=result.images, generationId=result.generation_id)

    # ============================================================
    # Progress stream
    # ============================================================

    @app.get("/progress")
    async def progress(request: Request):
        """Open a server-push stream of progress records for `id`."""
        generation_id = (request.query_params.get("id") or "").strip()
        if not generation_id:
            return JSONResponse(status_code=400, content={"error": "Missing generation ID"})

        logger.info(
            "Progress stream opened for %s", generation_id,
            extra={"generation_id": generation_id},
        )
        events = progress_events(
            store,
            generation_id,
            is_disconnected=request.is_disconnected,
            interval=config.stream_interval_seconds,
            max_duration=config.stream_max_seconds,
        )
        return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)

    # ============================================================
    # Catalog / health
    # ============================================================

    @app.get("/transformations", response_model=TransformationList)
    def list_transformations():
        return {
            "object": "list",
            "data": [
                {"id": t.id, "label": t.label, "model": t.model}
                for t in TRANSFORMATIONS.values()
            ],
        }

    @app.get("/health", response_model=HealthResponse)
    def health():
        return {"status": "ok", "activeGenerations": len(store)}

    return app
