"""Prediction-service HTTP client (Replicate).

Processing flow:
    1. `submit(model_ref, input)` creates a prediction and returns its id.
    2. `get_status(id)` returns a `PredictionSnapshot` for one poll.

Polling itself lives in `imagerelay.image.waiter`; this module performs
exactly one logical call per method (plus transport retries).

Retry behavior:
    Status codes `429,500,502,503,504` and transport errors are retried up to
    `retry_attempts` with exponential backoff.

Error handling strategy:
    - Missing API token -> `PredictionServiceError` before any request.
    - Non-retryable HTTP status or retry exhaustion -> `PredictionServiceError`
      carrying the status code and the service's `detail` when present.

Security considerations:
    The token is sent only in the `Authorization` header and never logged.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from imagerelay.core.errors import PredictionServiceError
from imagerelay.image.provider_config import REPLICATE_API_URL, REPLICATE_KEY_FILE, load_key


logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = (429, 500, 502, 503, 504)


@dataclass(frozen=True)
class PredictionSnapshot:
    """One observation of an external prediction.

    `status` is the service's raw value: `starting`, `processing`,
    `succeeded`, `failed`, or `canceled`.
    """

    status: str
    output: Any = None
    error: str | None = None
    id: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "PredictionSnapshot":
        error = payload.get("error")
        return cls(
            status=str(payload.get("status") or ""),
            output=payload.get("output"),
            error=str(error) if error else None,
            id=payload.get("id"),
        )


class PredictionClient(Protocol):
    """Minimal async interface required by the generation service and waiter."""

    async def submit(self, model_ref: str, input: dict) -> str:
        """Create a prediction and return its handle."""
        ...

    async def get_status(self, handle: str) -> PredictionSnapshot:
        """Return the current state of the prediction `handle`."""
        ...


class ReplicateClient:
    """`PredictionClient` backed by the Replicate HTTP API."""

    def __init__(
        self,
        api_token: str | None = None,
        base_url: str = REPLICATE_API_URL,
        timeout_seconds: float = 30.0,
        retry_attempts: int = 3,
        backoff_seconds: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_token = api_token if api_token is not None else load_key(REPLICATE_KEY_FILE)
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = retry_attempts
        self.backoff_seconds = backoff_seconds
        self._transport = transport

    async def submit(self, model_ref: str, input: dict) -> str:
        """Create a prediction for `model_ref`.

        `owner/name:version` posts to `/predictions` with the version id;
        `owner/name` posts to the model's own predictions endpoint.
        """
        if not self.api_token:
            raise PredictionServiceError("Replicate API token is not configured")

        owner_name, _, version = model_ref.partition(":")
        if version:
            url = f"{self.base_url}/predictions"
            body: dict[str, Any] = {"version": version, "input": input}
        else:
            url = f"{self.base_url}/models/{owner_name}/predictions"
            body = {"input": input}

        payload = await self._request("POST", url, json_body=body)
        prediction_id = payload.get("id")
        if not prediction_id:
            raise PredictionServiceError("Prediction service did not return a prediction id")

        logger.info("Created prediction %s for %s", prediction_id, owner_name)
        return str(prediction_id)

    async def get_status(self, handle: str) -> PredictionSnapshot:
        payload = await self._request("GET", f"{self.base_url}/predictions/{handle}")
        return PredictionSnapshot.from_payload(payload)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _backoff(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** attempt)

    async def _request(self, method: str, url: str, json_body: dict | None = None) -> dict:
        """Execute one request with retry/backoff and return the JSON body."""
        attempts = max(1, self.retry_attempts)

        for attempt in range(attempts):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout_seconds,
                    headers=self._headers(),
                    transport=self._transport,
                ) as client:
                    response = await client.request(method, url, json=json_body)
            except httpx.RequestError as exc:
                if attempt < attempts - 1:
                    await asyncio.sleep(self._backoff(attempt))
                    continue
                raise PredictionServiceError(
                    f"Prediction service unreachable: {exc.__class__.__name__}"
                ) from exc

            if response.status_code in _RETRYABLE_STATUS and attempt < attempts - 1:
                logger.debug("Retrying %s %s after status %s", method, url, response.status_code)
                await asyncio.sleep(self._backoff(attempt))
                continue

            if response.status_code >= 400:
                raise PredictionServiceError(_describe_failure(response))

            try:
                return response.json()
            except ValueError as exc:
                raise PredictionServiceError("Prediction service returned invalid JSON") from exc

        raise PredictionServiceError(f"Request failed without error details for url={url}")


def _describe_failure(response: httpx.Response) -> str:
    detail = None
    try:
        body = response.json()
        if isinstance(body, dict):
            detail = body.get("detail") or body.get("title")
    except ValueError:
        pass
    message = f"Prediction service returned HTTP {response.status_code}"
    if detail:
        message += f": {detail}"
    return message
