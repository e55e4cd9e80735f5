import asyncio

import pytest

from conftest import ScriptedPredictionClient, processing, succeeded
from imagerelay.core.errors import GenerationError, GenerationTimeout, PredictionServiceError
from imagerelay.core.progress_store import ProgressStore
from imagerelay.image.client import PredictionSnapshot
from imagerelay.image.waiter import (
    OUTCOME_CONTINUE,
    OUTCOME_FAILURE,
    OUTCOME_SUCCESS,
    PredictionWaiter,
    filter_image_urls,
    translate_status,
)


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_waiter(client, store=None, max_attempts=30):
    sleep = RecordingSleep()
    waiter = PredictionWaiter(
        client, store if store is not None else ProgressStore(), interval=2.0, max_attempts=max_attempts, sleep=sleep,
    )
    return waiter, sleep


# ============================================================
# translate_status
# ============================================================

def test_processing_maps_to_attempt_progress():
    transition = translate_status(PredictionSnapshot("processing"), 3, 30)
    assert transition.outcome == OUTCOME_CONTINUE
    assert transition.record.status == "processing"
    assert transition.record.progress == pytest.approx(10.0)


def test_starting_maps_to_generating():
    transition = translate_status(PredictionSnapshot("starting"), 15, 30)
    assert transition.outcome == OUTCOME_CONTINUE
    assert transition.record.status == "generating"
    assert transition.record.progress == pytest.approx(50.0)


def test_succeeded_with_output_is_success():
    transition = translate_status(succeeded(["http://x/1.png"]), 6, 30)
    assert transition.outcome == OUTCOME_SUCCESS
    assert transition.record.status == "complete"
    assert transition.record.progress == 100


@pytest.mark.parametrize("output", [None, [], ""])
def test_succeeded_without_output_is_failure(output):
    transition = translate_status(succeeded(output), 4, 30)
    assert transition.outcome == OUTCOME_FAILURE
    assert transition.record.status == "error"
    assert "invalid response format" in transition.error_message.lower()


def test_failed_carries_external_error():
    transition = translate_status(PredictionSnapshot("failed", error="CUDA out of memory"), 2, 30)
    assert transition.outcome == OUTCOME_FAILURE
    assert transition.record.status == "error"
    assert transition.error_message == "CUDA out of memory"


def test_canceled_folds_into_error():
    transition = translate_status(PredictionSnapshot("canceled"), 2, 30)
    assert transition.outcome == OUTCOME_FAILURE
    assert transition.record.status == "error"
    assert "canceled" in transition.error_message


def test_progress_is_clamped():
    assert translate_status(PredictionSnapshot("processing"), 45, 30).record.progress == 100


def test_filter_image_urls_drops_invalid_entries():
    output = ["http://x/1.png", "", None, 42, "not a url", "https://cdn.example.com/2.png"]
    assert filter_image_urls(output) == ["http://x/1.png", "https://cdn.example.com/2.png"]


def test_filter_image_urls_accepts_single_string():
    assert filter_image_urls("https://cdn.example.com/a.png") == ["https://cdn.example.com/a.png"]


# ============================================================
# PredictionWaiter loop
# ============================================================

def test_waiter_returns_after_exactly_six_polls():
    client = ScriptedPredictionClient(processing(5) + [succeeded(["http://x/1.png"])])
    store = ProgressStore()
    waiter, sleep = make_waiter(client, store)

    images = asyncio.run(waiter.wait("gen-1", "pred-123"))

    assert images == ["http://x/1.png"]
    assert client.polls == 6
    assert sleep.calls == [2.0] * 5
    assert store.get("gen-1").status == "complete"
    assert store.get("gen-1").progress == 100


def test_waiter_times_out_exactly_at_max_attempts():
    client = ScriptedPredictionClient(processing(1))
    store = ProgressStore()
    waiter, sleep = make_waiter(client, store)

    with pytest.raises(GenerationTimeout) as exc_info:
        asyncio.run(waiter.wait("gen-1", "pred-123"))

    assert client.polls == 30
    assert len(sleep.calls) == 29
    assert exc_info.value.message == "Generation timed out"
    record = store.get("gen-1")
    assert (record.status, record.progress, record.message) == ("error", 100, "Generation timed out")


def test_waiter_succeeds_on_last_attempt():
    client = ScriptedPredictionClient(processing(29) + [succeeded(["http://x/1.png"])])
    waiter, _ = make_waiter(client)

    assert asyncio.run(waiter.wait("gen-1", "pred-123")) == ["http://x/1.png"]
    assert client.polls == 30


def test_waiter_treats_empty_success_as_failure():
    client = ScriptedPredictionClient([succeeded([])])
    store = ProgressStore()
    waiter, _ = make_waiter(client, store)

    with pytest.raises(GenerationError) as exc_info:
        asyncio.run(waiter.wait("gen-1", "pred-123"))

    assert not isinstance(exc_info.value, GenerationTimeout)
    assert client.polls == 1
    assert store.get("gen-1").status == "error"


def test_waiter_fails_when_no_output_is_a_url():
    client = ScriptedPredictionClient([succeeded(["", "relative/path.png"])])
    store = ProgressStore()
    waiter, _ = make_waiter(client, store)

    with pytest.raises(GenerationError, match="No valid images were generated"):
        asyncio.run(waiter.wait("gen-1", "pred-123"))

    assert store.get("gen-1").status == "error"


def test_waiter_filters_output_before_returning():
    client = ScriptedPredictionClient([succeeded(["https://a/1.png", "", "https://a/2.png"])])
    waiter, _ = make_waiter(client)

    assert asyncio.run(waiter.wait("gen-1", "pred-123")) == ["https://a/1.png", "https://a/2.png"]


def test_waiter_records_external_failure_before_raising():
    client = ScriptedPredictionClient(processing(2) + [PredictionSnapshot("failed", error="NSFW content detected")])
    store = ProgressStore()
    waiter, _ = make_waiter(client, store)

    with pytest.raises(GenerationError, match="NSFW content detected") as exc_info:
        asyncio.run(waiter.wait("gen-1", "pred-123"))

    assert exc_info.value.generation_id == "gen-1"
    record = store.get("gen-1")
    assert record.status == "error"
    assert record.progress == pytest.approx(10.0)


def test_waiter_poll_transport_error_becomes_generation_error():
    client = ScriptedPredictionClient(poll_error=PredictionServiceError("Prediction service unreachable: ConnectError"))
    store = ProgressStore()
    waiter, _ = make_waiter(client, store)

    with pytest.raises(GenerationError, match="unreachable"):
        asyncio.run(waiter.wait("gen-1", "pred-123"))

    assert store.get("gen-1").status == "error"


def test_filter_image_urls_rejects_empty_data_and_hostless_urls():
    assert filter_image_urls(["data:", "data:image/png;base64", "http://", "https:/x"]) == []


def test_filter_image_urls_keeps_data_uri_with_payload():
    assert filter_image_urls(["data:image/png;base64,iVBORw0K"]) == ["data:image/png;base64,iVBORw0K"]


def test_waiter_uses_the_empty_store_it_was_given():
    client = ScriptedPredictionClient([succeeded(["http://x/1.png"])])
    store = ProgressStore()
    waiter, _ = make_waiter(client, store)

    asyncio.run(waiter.wait("gen-1", "pred-123"))

    assert store.get("gen-1").status == "complete"
