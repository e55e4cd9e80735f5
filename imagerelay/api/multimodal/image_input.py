"""Image reference handling for the HTTP adapter and the CLI.

Architectural role:
- Validate the `image` field of `POST /generate` before any job is created.
- Turn a local file into a data URL for the CLI `generate` command.

Accepted references:
- `data:image/<type>;base64,<payload>` within the configured size limit.
- `http://` / `https://` URLs with a host, reachable by the prediction service.

Error handling strategy:
- Validation failures raise `InvalidGenerationRequest` (HTTP 400).
- No bytes are decoded; the base64 payload size is estimated from its length.
"""

import base64
import mimetypes
import os
from urllib.parse import urlparse

from imagerelay.core.errors import InvalidGenerationRequest


# ============================================================
# CONFIG
# ============================================================

DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024
ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}


# ============================================================
# VALIDATION
# ============================================================

def estimate_decoded_size(encoded: str) -> int:
    """Approximate decoded size of a base64 payload without decoding it."""
    padding = 0
    if encoded.endswith("=="):
        padding = 2
    elif encoded.endswith("="):
        padding = 1
    return (len(encoded) * 3) // 4 - padding


def validate_image_reference(image: str, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> str:
    """
    Check that `image` is something the prediction service can fetch.

    Returns the reference with surrounding whitespace removed.
    """
    image = image.strip()

    if image.startswith("data:"):
        header, sep, encoded = image.partition(",")
        if not sep or not header.startswith("data:image/") or not header.endswith(";base64") or not encoded:
            raise InvalidGenerationRequest("Image data URL must contain base64 image data")
        if estimate_decoded_size(encoded) > max_bytes:
            limit_mb = max_bytes / (1024 * 1024)
            raise InvalidGenerationRequest(f"Image exceeds the {limit_mb:g} MB size limit")
        return image

    parsed = urlparse(image)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return image

    raise InvalidGenerationRequest("Image must be a data URL or an http(s) URL")


# ============================================================
# LOCAL FILES
# ============================================================

def encode_file_as_data_url(path: str, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> str:
    """
    Read a local image file and return it as a base64 data URL.

    Raises `ValueError` for unsupported extensions or oversized files and
    `FileNotFoundError` when the path does not exist.
    """
    path = os.path.realpath(os.path.expanduser(path))
    ext = os.path.splitext(path)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValueError(f"Unsupported image type: {ext or 'no extension'}")

    size = os.path.getsize(path)
    if size > max_bytes:
        raise ValueError("File exceeds max size limit")

    mime_type = mimetypes.guess_type(path)[0] or "image/png"
    with open(path, "rb") as f:
        encoded = base64.b64encode(f.read()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def resolve_image_argument(value: str, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> str:
    """Pass URLs through unchanged; encode anything else as a local file."""
    if value.startswith(("data:", "http://", "https://")):
        return value
    return encode_file_as_data_url(value, max_bytes=max_bytes)
