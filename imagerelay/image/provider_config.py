"""Provider/runtime configuration for the relay.

Architectural role:
    Centralizes prediction-service endpoints, credential lookup, and the
    timing knobs used by `imagerelay.image.waiter`, `imagerelay.image.client`,
    the progress stream, and the deferred cleanup.

Determinism:
    Values are resolved from the process environment at import time (after
    `load_dotenv()`), plus runtime key-file reads in `load_key`.

Failure behavior:
    Missing credentials are represented as `None`; `ReplicateClient` turns
    that into a `PredictionServiceError` at submission time.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


REPLICATE_API_URL = os.getenv("REPLICATE_API_URL", "https://api.replicate.com/v1").rstrip("/")
REPLICATE_KEY_FILE = "config/replicate.key"

# Stable Diffusion XL; every transformation runs on it unless overridden.
DEFAULT_MODEL_VERSION = (
    "stability-ai/sdxl:"
    "39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b"
)
IMAGE_MODEL_VERSION = os.getenv("IMAGE_MODEL_VERSION", DEFAULT_MODEL_VERSION)

# Sampler parameters forwarded with every prediction.
GENERATION_PARAMS = {
    "num_outputs": 4,
    "scheduler": "K_EULER",
    "num_inference_steps": 50,
    "guidance_scale": 7.5,
}


def load_key(path):
    """Load the API token from the environment or a key file.

    Resolution order:
        1. `REPLICATE_API_TOKEN`.
        2. Environment variable inferred from the file stem
           (`config/replicate.key` -> `REPLICATE_API_KEY`).
        3. Raw file contents at `path`.

    Returns:
        Token string or `None` when not available.
    """
    env_token = os.getenv("REPLICATE_API_TOKEN")
    if env_token:
        return env_token.strip()
    if not path:
        return None
    key_name = os.path.splitext(os.path.basename(path))[0].upper() + "_API_KEY"
    env_value = os.getenv(key_name)
    if env_value:
        return env_value.strip()
    if not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return f.read().strip() or None


@dataclass(frozen=True)
class RelayConfig:
    """Runtime configuration for the relay.

    Fields are read from environment variables at import time.

    Relevant environment variables:
        - `POLL_INTERVAL_SECONDS` / `MAX_POLL_ATTEMPTS`
        - `STREAM_INTERVAL_SECONDS` / `STREAM_MAX_SECONDS`
        - `CLEANUP_DELAY_SECONDS`
        - `HTTP_TIMEOUT_SECONDS` / `HTTP_RETRY_ATTEMPTS` / `HTTP_BACKOFF_SECONDS`
        - `MAX_IMAGE_MB`
        - `DEBUG`
    """

    poll_interval_seconds: float = float(os.getenv("POLL_INTERVAL_SECONDS", "2"))
    max_poll_attempts: int = int(os.getenv("MAX_POLL_ATTEMPTS", "30"))
    stream_interval_seconds: float = float(os.getenv("STREAM_INTERVAL_SECONDS", "1"))
    stream_max_seconds: float = float(os.getenv("STREAM_MAX_SECONDS", "300"))
    cleanup_delay_seconds: float = float(os.getenv("CLEANUP_DELAY_SECONDS", "5"))
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
    http_retry_attempts: int = int(os.getenv("HTTP_RETRY_ATTEMPTS", "3"))
    http_backoff_seconds: float = float(os.getenv("HTTP_BACKOFF_SECONDS", "0.5"))
    max_image_mb: float = float(os.getenv("MAX_IMAGE_MB", "10"))
    debug: bool = os.getenv("DEBUG", "").lower() == "true"

    @property
    def max_image_bytes(self) -> int:
        return int(self.max_image_mb * 1024 * 1024)
