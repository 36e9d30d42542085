# tests/test_events.py
"""
Tests for the event bus.
"""
import asyncio
import pytest

from microdock.services.events import EventBus, EventType


def test_publish_keeps_bounded_history():
    bus = EventBus(history_size=3)
    for i in range(5):
        bus.publish(EventType.PROGRESS, step=i)
    assert [e.data["step"] for e in bus.history] == [2, 3, 4]


def test_listener_failure_does_not_stop_publishing():
    bus = EventBus()
    seen = []

    def broken(event):
        raise ValueError("listener bug")

    bus.add_listener(broken)
    bus.add_listener(seen.append)
    bus.info("hello")

    assert len(seen) == 1
    assert seen[0].data == {"level": "info", "message": "hello"}


def test_event_to_dict():
    event = EventBus().warning("careful")
    data = event.to_dict()
    assert data["type"] == "notification"
    assert data["data"] == {"level": "warning", "message": "careful"}
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_subscribers_receive_events():
    bus = EventBus()
    queue = bus.subscribe()

    bus.publish(EventType.OPEN_URL, url="http://localhost:8000/docs")

    event = await asyncio.wait_for(queue.get(), timeout=1)
    assert event.type == EventType.OPEN_URL
    bus.unsubscribe(queue)
    bus.publish(EventType.OPEN_URL, url="ignored")
    assert queue.empty()


@pytest.mark.asyncio
async def test_full_subscriber_queue_drops_events():
    bus = EventBus(queue_size=1)
    queue = bus.subscribe()
    bus.info("one")
    bus.info("two")
    assert queue.qsize() == 1


@pytest.mark.asyncio
async def test_stream_yields_published_events():
    bus = EventBus()
    stream = bus.stream()

    next_event = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0)
    bus.error("broken")

    event = await asyncio.wait_for(next_event, timeout=1)
    assert event.data["level"] == "error"
    await stream.aclose()

