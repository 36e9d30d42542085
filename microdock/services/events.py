"""
Event bus

Single channel for everything the host surface has to react to: status
changes (from polling or the Docker event stream), user notifications,
URLs to open and log views to show.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncGenerator, Callable, Dict, List, Set

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    STATUS_CHANGED = "status_changed"
    DOCKER_STATE = "docker_state"
    NOTIFICATION = "notification"
    OPEN_URL = "open_url"
    SHOW_LOGS = "show_logs"
    PROGRESS = "progress"


@dataclass
class Event:
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


class EventBus:
    """In-process publish/subscribe over asyncio queues"""

    def __init__(self, history_size: int = 100, queue_size: int = 256):
        self.history_size = history_size
        self.queue_size = queue_size
        self.history: List[Event] = []
        self._queues: Set[asyncio.Queue] = set()
        self._listeners: List[Callable[[Event], None]] = []

    def add_listener(self, callback: Callable[[Event], None]) -> None:
        """Synchronous callback run for every published event"""
        self._listeners.append(callback)

    def publish(self, event_type: EventType, **data) -> Event:
        """Publish an event; must be called from the loop thread"""
        event = Event(type=event_type, data=data)
        self.history.append(event)
        if len(self.history) > self.history_size:
            self.history = self.history[-self.history_size:]

        for callback in self._listeners:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event listener failed on {event.type.value}: {e}", exc_info=True)

        for queue in list(self._queues):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping event for a slow subscriber")
        return event

    def notify(self, level: str, message: str) -> Event:
        log = {"error": logger.error, "warning": logger.warning}.get(level, logger.info)
        log(message)
        return self.publish(EventType.NOTIFICATION, level=level, message=message)

    def info(self, message: str) -> Event:
        return self.notify("info", message)

    def warning(self, message: str) -> Event:
        return self.notify("warning", message)

    def error(self, message: str) -> Event:
        return self.notify("error", message)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._queues.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)

    async def stream(self) -> AsyncGenerator[Event, None]:
        """Yield events as they are published (for SSE)"""
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)
