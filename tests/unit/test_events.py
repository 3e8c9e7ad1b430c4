"""Unit tests for lifecycle events."""

import asyncio
from datetime import datetime
from typing import get_args
from unittest.mock import Mock

import pytest

from scriptrunner.core.events import EventBus, EventType, StreamEvent, emit


def make_event(text: str = "hello", event_type: str = "command_output") -> StreamEvent:
    return StreamEvent(type=event_type, data={"text": text}, source="cmd-1")


class TestStreamEvent:
    def test_create_valid_event(self):
        event = make_event()

        assert event.type == "command_output"
        assert event.data == {"text": "hello"}
        assert event.source == "cmd-1"
        assert event.id
        datetime.fromisoformat(event.ts)

    def test_invalid_data_type(self):
        with pytest.raises(ValueError, match="Event data must be dict"):
            StreamEvent(type="command_output", data="not a dict", source="cmd-1")

    def test_source_required(self):
        with pytest.raises(ValueError, match="source is required"):
            StreamEvent(type="session_created", data={}, source="")

    def test_event_types(self):
        assert set(get_args(EventType)) == {
            "session_created",
            "session_ready",
            "session_closed",
            "command_started",
            "command_output",
            "command_completed",
            "command_timeout",
            "command_interrupted",
            "error",
        }


class TestEventBus:
    def test_init(self):
        bus = EventBus()

        assert bus.subscriber_count == 0
        assert bus.queue_size == 0

    def test_subscribe_unsubscribe(self):
        bus = EventBus()
        handler1 = Mock()
        handler2 = Mock()

        bus.subscribe(handler1)
        bus.subscribe(handler2)
        bus.subscribe(handler1)
        assert bus.subscriber_count == 2

        bus.unsubscribe(handler1)
        bus.unsubscribe(Mock())
        assert bus.subscriber_count == 1

    def test_publish_to_subscribers_and_queue(self):
        bus = EventBus()
        handler = Mock()
        bus.subscribe(handler)

        event = make_event()
        bus.publish(event)

        handler.assert_called_once_with(event)
        assert bus.queue_size == 1

    def test_handler_exception_is_logged_not_raised(self):
        logger = Mock()
        bus = EventBus(logger=logger)
        good = Mock()

        def failing_handler(event):
            raise RuntimeError("Handler failed")

        bus.subscribe(failing_handler)
        bus.subscribe(good)
        bus.publish(make_event())

        good.assert_called_once()
        logger.error.assert_called_once()
        assert logger.error.call_args.kwargs["handler"] == "failing_handler"

    def test_publish_to_closed_bus_is_dropped(self):
        bus = EventBus()
        handler = Mock()
        bus.subscribe(handler)
        bus.close()

        bus.publish(make_event())

        handler.assert_not_called()
        assert bus.queue_size == 0

    def test_full_queue_still_notifies_subscribers(self):
        bus = EventBus(max_queue=1)
        handler = Mock()
        bus.subscribe(handler)

        bus.publish(make_event("one"))
        bus.publish(make_event("two"))

        assert bus.queue_size == 1
        assert handler.call_count == 2

    @pytest.mark.asyncio
    async def test_async_iteration(self):
        bus = EventBus()
        for text in ("a", "b", "c"):
            bus.publish(make_event(text))
        bus.close()

        collected = [event.data["text"] async for event in bus]
        assert collected == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_async_iteration_waits_for_events(self):
        bus = EventBus()

        async def collect_two():
            events = []
            async for event in bus:
                events.append(event)
                if len(events) >= 2:
                    break
            return events

        task = asyncio.create_task(collect_two())
        await asyncio.sleep(0.05)
        bus.publish(make_event("first"))
        await asyncio.sleep(0.05)
        bus.publish(make_event("second"))

        events = await asyncio.wait_for(task, timeout=2)
        assert [e.data["text"] for e in events] == ["first", "second"]
        bus.close()


class TestEmit:
    def test_emit_without_bus_is_noop(self):
        emit(None, "session_created", "s1", display_name="x")

    def test_emit_builds_event(self):
        bus = EventBus()
        handler = Mock()
        bus.subscribe(handler)

        emit(bus, "command_timeout", "cmd-9", session_id="s1", timeout_ms=50)

        event = handler.call_args.args[0]
        assert event.type == "command_timeout"
        assert event.source == "cmd-9"
        assert event.data == {"session_id": "s1", "timeout_ms": 50}
