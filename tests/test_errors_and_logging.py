import json
import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from imagerelay.core.errors import (
    GenerationTimeout,
    InvalidGenerationRequest,
    SubmissionError,
    error_response,
    register_exception_handlers,
    sanitize_message,
)
from imagerelay.core.logging_config import JSONFormatter


def test_status_codes_follow_taxonomy():
    assert InvalidGenerationRequest("x").status_code == 400
    assert SubmissionError("x").status_code == 500
    assert GenerationTimeout("x").status_code == 500


def test_error_response_includes_generation_id():
    response = error_response(GenerationTimeout("Generation timed out", generation_id="gen-1"))

    assert response.status_code == 500
    assert json.loads(response.body) == {"error": "Generation timed out", "generationId": "gen-1"}


def test_error_response_omits_missing_generation_id():
    response = error_response(InvalidGenerationRequest("Invalid transformation"))

    assert json.loads(response.body) == {"error": "Invalid transformation"}


def test_sanitize_message_hides_internal_paths():
    assert sanitize_message("cannot open /home/relay/config/replicate.key") == "cannot open [INTERNAL_PATH]"


def test_json_formatter_includes_generation_id():
    record = logging.LogRecord("imagerelay.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.generation_id = "gen-1"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["generation_id"] == "gen-1"


def test_unhandled_exception_returns_route_neutral_message(caplog):
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    with caplog.at_level(logging.ERROR, logger="imagerelay.core.errors"):
        response = TestClient(app, raise_server_exceptions=False).get("/boom")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    handler_records = [r for r in caplog.records if r.name == "imagerelay.core.errors"]
    assert len(handler_records) == 1
    assert handler_records[0].exc_info is None
