"""Lifecycle events for sessions and commands.

The pool, registry and runner publish onto an optional EventBus so a CLI or
UI can follow progress (including streamed output) without polling.
"""

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from scriptrunner.core.logger import ScriptRunnerLogger

# When adding new event types, add them to EventType and to test_events.py
EventType = Literal[
    "session_created",
    "session_ready",
    "session_closed",
    "command_started",
    "command_output",
    "command_completed",
    "command_timeout",
    "command_interrupted",
    "error",
]


@dataclass
class StreamEvent:
    """One lifecycle event.

    ``source`` identifies the session or command that produced the event.
    """

    type: EventType
    data: dict[str, Any]
    source: str
    ts: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if not isinstance(self.data, dict):
            raise ValueError(f"Event data must be dict, got {type(self.data)}")

        if not self.source:
            raise ValueError("source is required for all events")


class EventBus:
    """Publish/subscribe bus with async iteration.

    Subscriber failures are logged and never propagate to the publisher.
    """

    def __init__(self, logger: ScriptRunnerLogger | None = None, max_queue: int = 1000) -> None:
        self._subscribers: list[Callable[[StreamEvent], None]] = []
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=max_queue)
        self._closed = False
        self._logger = logger

    def publish(self, event: StreamEvent) -> None:
        if self._closed:
            self._log_debug("Publishing to closed event bus", event_type=event.type)
            return

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            # Iteration is optional; subscribers still receive the event
            pass

        for handler in self._subscribers[:]:
            try:
                handler(event)
            except Exception as e:
                if self._logger:
                    self._logger.error(
                        "EventBus: Handler failed",
                        error=str(e),
                        handler=getattr(handler, "__name__", repr(handler)),
                        event_type=event.type,
                    )

    def subscribe(self, handler: Callable[[StreamEvent], None]) -> None:
        if handler not in self._subscribers:
            self._subscribers.append(handler)

    def unsubscribe(self, handler: Callable[[StreamEvent], None]) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        """Yield queued events until the bus is closed and drained."""
        while not self._closed or not self._queue.empty():
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.1)
                yield event
            except TimeoutError:
                continue

    def close(self) -> None:
        self._closed = True

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    def _log_debug(self, msg: str, **kv: Any) -> None:
        if self._logger:
            self._logger.debug(msg, **kv)


def emit(bus: EventBus | None, event_type: EventType, source: str, **data: Any) -> None:
    """Publish an event when a bus is configured."""
    if bus is None:
        return
    bus.publish(StreamEvent(type=event_type, data=data, source=source))
