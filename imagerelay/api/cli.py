"""
Command line adapter for the image relay.

Architectural role:
- `serve`: run the HTTP API with uvicorn.
- `transformations`, `generate`, `watch`: thin HTTP clients for a running relay.

Request lifecycle (`generate`):
1. Resolve IMAGE (URL passed through, local file encoded as a data URL).
2. POST `{image, transformation}` to `/generate`.
3. Print each returned image URL and the generation id.

Error handling strategy:
- Relay error responses print the `error` field and exit with status 1.
- Connection failures print a short message and exit with status 1.
- Malformed progress frames in `watch` are logged and skipped.
"""

import argparse
import json
import logging
import os
import sys

import requests

from imagerelay.api.multimodal.image_input import resolve_image_argument


logger = logging.getLogger(__name__)

DEFAULT_URL = os.getenv("IMAGERELAY_URL", "http://127.0.0.1:8000")
GENERATE_TIMEOUT_SECONDS = 180


# =========================================================
# HTTP HELPERS
# =========================================================

def _error_text(response: requests.Response) -> str:
    try:
        return response.json().get("error") or response.text
    except ValueError:
        return response.text


def parse_event(line: str):
    """
    Decode one SSE `data:` line into a progress dict.

    Returns `None` for non-data lines and malformed payloads.
    """
    if not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    try:
        event = json.loads(payload)
    except ValueError:
        logger.warning("Ignoring malformed progress event: %r", payload)
        return None
    if not isinstance(event, dict):
        logger.warning("Ignoring unexpected progress event: %r", payload)
        return None
    return event


def format_event(event: dict) -> str:
    progress = event.get("progress", 0)
    try:
        progress = float(progress)
    except (TypeError, ValueError):
        progress = 0.0
    return f"[{event.get('status', '?'):>10}] {progress:5.1f}%  {event.get('message', '')}"


# =========================================================
# COMMANDS
# =========================================================

def cmd_serve(args) -> int:
    import uvicorn

    from imagerelay.core.logging_config import setup_logging

    setup_logging()
    logger.info("Starting image relay on http://%s:%s", args.host, args.port)
    uvicorn.run("imagerelay.api.main:app", host=args.host, port=args.port, log_config=None)
    return 0


def cmd_transformations(args) -> int:
    response = requests.get(f"{args.url}/transformations", timeout=10)
    if response.status_code != 200:
        print(f"Error: {_error_text(response)}")
        return 1
    for item in response.json().get("data", []):
        print(f"{item['id']:<15} {item.get('label', '')}")
    return 0


def cmd_generate(args) -> int:
    try:
        image = resolve_image_argument(args.image)
    except (OSError, ValueError) as e:
        print(f"Cannot read image: {e}")
        return 1

    print(f"Submitting '{args.transformation}' generation...")
    response = requests.post(
        f"{args.url}/generate",
        json={"image": image, "transformation": args.transformation},
        timeout=GENERATE_TIMEOUT_SECONDS,
    )

    if response.status_code != 200:
        print(f"Error ({response.status_code}): {_error_text(response)}")
        return 1

    data = response.json()
    images = data.get("images") or []
    if not images:
        print("Error: No valid images were generated")
        return 1

    print(f"Generation {data.get('generationId')}:")
    for url in images:
        print(f" - {url}")
    return 0


def cmd_watch(args) -> int:
    with requests.get(
        f"{args.url}/progress",
        params={"id": args.generation_id},
        stream=True,
        timeout=(10, None),
    ) as response:
        if response.status_code != 200:
            print(f"Error ({response.status_code}): {_error_text(response)}")
            return 1

        for line in response.iter_lines(decode_unicode=True):
            if not line:
                continue
            event = parse_event(line)
            if event is None:
                continue
            print(format_event(event), flush=True)
            if event.get("status") == "error":
                return 1
    return 0


# =========================================================
# ENTRYPOINT
# =========================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="imagerelay", description="Image generation relay")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the relay HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)

    listing = sub.add_parser("transformations", help="List available transformations")
    listing.add_argument("--url", default=DEFAULT_URL)
    listing.set_defaults(func=cmd_transformations)

    generate = sub.add_parser("generate", help="Generate variants of an image")
    generate.add_argument("image", help="Image URL or local image file")
    generate.add_argument("transformation", help="Transformation id")
    generate.add_argument("--url", default=DEFAULT_URL)
    generate.set_defaults(func=cmd_generate)

    watch = sub.add_parser("watch", help="Follow the progress stream of a generation")
    watch.add_argument("generation_id")
    watch.add_argument("--url", default=DEFAULT_URL)
    watch.set_defaults(func=cmd_watch)

    return parser


def main(argv=None) -> int:
    """
    Parse arguments and dispatch to a command.

    Error handling:
    - Connection errors to the relay are reported without a traceback.
    - Keyboard interrupts end the command quietly.
    """
    args = build_parser().parse_args(argv)
    args.url = getattr(args, "url", DEFAULT_URL).rstrip("/")

    try:
        return args.func(args)
    except requests.exceptions.ConnectionError:
        print(f"Could not connect to relay at {args.url}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
