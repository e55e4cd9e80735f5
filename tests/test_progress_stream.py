import asyncio
import json

from imagerelay.core.progress_store import ProgressStore
from imagerelay.core.progress_stream import format_event, progress_events
from imagerelay.core.progress_types import ProgressRecord


def collect(agen):
    async def _run():
        return [event async for event in agen]
    return asyncio.run(_run())


def decode(frame):
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


def test_format_event_is_one_sse_frame():
    frame = format_event(ProgressRecord("processing", 40.0, "Processing images..."))
    assert decode(frame) == {"status": "processing", "progress": 40.0, "message": "Processing images..."}


def test_terminal_record_is_pushed_once_and_closes():
    store = ProgressStore()
    store.set("gen-1", "complete", 100, "Generation complete")

    events = collect(progress_events(store, "gen-1", interval=0.01, max_duration=1))

    assert [decode(e)["status"] for e in events] == ["complete"]
    # The stream leaves removal to the deferred cleanup.
    assert store.get("gen-1") is not None


def test_stream_follows_updates_until_error():
    store = ProgressStore()
    store.set("gen-1", "generating", 10, "Generating images...")

    async def _run():
        events = []

        async def writer():
            await asyncio.sleep(0.03)
            store.set("gen-1", "processing", 50, "Processing images...")
            await asyncio.sleep(0.03)
            store.set("gen-1", "error", 50, "Image generation failed")

        task = asyncio.create_task(writer())
        async for event in progress_events(store, "gen-1", interval=0.01, max_duration=2):
            events.append(decode(event))
        await task
        return events

    events = asyncio.run(_run())

    statuses = [e["status"] for e in events]
    assert statuses[0] == "generating"
    assert "processing" in statuses
    assert statuses[-1] == "error"


def test_unknown_id_pushes_nothing_until_max_duration():
    store = ProgressStore()
    events = collect(progress_events(store, "nope", interval=0.01, max_duration=0.1))
    assert events == []


def test_disconnect_stops_stream():
    store = ProgressStore()
    store.set("gen-1", "processing", 20, "Processing images...")
    checks = []

    async def is_disconnected():
        checks.append(True)
        return len(checks) >= 2

    events = collect(progress_events(
        store, "gen-1", is_disconnected=is_disconnected, interval=0.01, max_duration=5,
    ))

    # Initial push, one tick push, then the disconnect is observed.
    assert len(events) == 2
    assert len(checks) == 2
