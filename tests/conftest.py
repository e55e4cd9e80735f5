import pytest
from fastapi.testclient import TestClient

from imagerelay.api.http_api import create_app
from imagerelay.core.errors import PredictionServiceError
from imagerelay.core.progress_store import ProgressStore
from imagerelay.image.client import PredictionSnapshot
from imagerelay.image.provider_config import RelayConfig


class ScriptedPredictionClient:
    """Prediction client that replays a fixed list of snapshots.

    The last snapshot repeats once the script runs out.
    """

    def __init__(self, snapshots=None, submit_error=None, poll_error=None, handle="pred-123"):
        self.snapshots = list(snapshots or [PredictionSnapshot("processing")])
        self.submit_error = submit_error
        self.poll_error = poll_error
        self.handle = handle
        self.submissions = []
        self.polls = 0

    async def submit(self, model_ref, input):
        if self.submit_error is not None:
            raise self.submit_error
        self.submissions.append((model_ref, input))
        return self.handle

    async def get_status(self, handle):
        self.polls += 1
        if self.poll_error is not None:
            raise self.poll_error
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return self.snapshots[0]


def processing(times):
    return [PredictionSnapshot("processing") for _ in range(times)]


def succeeded(output):
    return PredictionSnapshot("succeeded", output=output)


@pytest.fixture
def store():
    return ProgressStore()


@pytest.fixture
def relay_config():
    return RelayConfig(
        poll_interval_seconds=0,
        max_poll_attempts=30,
        stream_interval_seconds=0.01,
        stream_max_seconds=0.3,
        cleanup_delay_seconds=60,
        max_image_mb=1,
        debug=False,
    )


@pytest.fixture
def make_client(store, relay_config):
    """Build a TestClient around an app wired to a scripted prediction client."""
    clients = []

    def _make(prediction_client=None, config=None):
        prediction_client = prediction_client or ScriptedPredictionClient(
            processing(2) + [succeeded(["https://cdn.example.com/out-1.png"])]
        )
        app = create_app(config=config or relay_config, store=store, client=prediction_client)
        test_client = TestClient(app)
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield _make

    for test_client in clients:
        test_client.__exit__(None, None, None)


@pytest.fixture
def failing_submit_client():
    return ScriptedPredictionClient(
        submit_error=PredictionServiceError("Prediction service returned HTTP 401: Unauthenticated")
    )


VALID_IMAGE = "https://images.example.com/portrait.jpg"
