"""
ASGI entrypoint for the image relay.

Run with `uvicorn imagerelay.api.main:app` or `imagerelay serve`.
Logging is configured here, once, before the application is built.
"""

from imagerelay.core.logging_config import setup_logging
from imagerelay.api.http_api import create_app


setup_logging()

app = create_app()
