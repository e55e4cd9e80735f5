"""Relay error taxonomy and FastAPI exception handlers.

Error handling strategy:
    - Validation failures raise `InvalidGenerationRequest` (HTTP 400).
    - Prediction-service transport failures raise `PredictionServiceError`.
    - Submission failures raise `SubmissionError` (HTTP 500, no polling).
    - Terminal polling failures raise `GenerationError` / `GenerationTimeout`.
    - The HTTP adapter is the only place these become responses.

Response formatting:
    `{"error": <message>}` plus `generationId` when the failure belongs to a
    generation that was already seeded in the progress store.
"""

import logging
import re

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


logger = logging.getLogger(__name__)

# Internal paths must not leak through error messages.
_PATH_PATTERN = re.compile(r"(\/(?:app|home|root|var|tmp|usr|etc|opt)\/[\w\-\.\/]+)")


class RelayError(Exception):
    """Base class for failures surfaced to HTTP callers."""

    status_code = 500

    def __init__(self, message: str, generation_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.generation_id = generation_id


class InvalidGenerationRequest(RelayError):
    status_code = 400


class PredictionServiceError(RelayError):
    """The prediction service rejected a call or could not be reached."""


class SubmissionError(RelayError):
    """A prediction could not be created; nothing was polled."""


class GenerationError(RelayError):
    """A submitted prediction ended without usable output."""


class GenerationTimeout(GenerationError):
    """Polling attempts were exhausted before a terminal state."""


def sanitize_message(msg: str) -> str:
    return _PATH_PATTERN.sub("[INTERNAL_PATH]", msg)


def error_response(exc: RelayError) -> JSONResponse:
    content = {"error": sanitize_message(exc.message)}
    if exc.generation_id:
        content["generationId"] = exc.generation_id
    return JSONResponse(status_code=exc.status_code, content=content)


async def relay_exception_handler(request: Request, exc: RelayError):
    if exc.status_code >= 500:
        logger.warning("Request to %s failed: %s", request.url.path, exc.message)
    return error_response(exc)


async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions. Returns a route-neutral message.

    Starlette re-raises the exception after this handler runs, so the
    traceback is logged once by the server.
    """
    logger.error("Unhandled %s on %s", exc.__class__.__name__, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RelayError, relay_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
