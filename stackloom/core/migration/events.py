"""Progress events emitted while a batch runs.

The orchestrator only knows the :class:`EventSink` protocol.  Two sinks
ship with Stackloom: an in-memory sink that buffers events per job and
fans them out to subscribers (late subscribers receive the buffer), and
a sink that writes events to the log.
"""

import json
import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

EVENT_TYPES = ("progress", "complete", "error")
MAX_BUFFERED_EVENTS = 100


@dataclass
class ProgressEvent:
    type: str  # "progress" | "complete" | "error"
    job_id: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "job_id": self.job_id,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }

    def to_sse(self) -> str:
        """Server-sent-events frame for this event."""
        return f"data: {json.dumps(self.to_dict(), default=str)}\n\n"


def progress_event(job_id: str, message: str, **data: Any) -> ProgressEvent:
    return ProgressEvent(type="progress", job_id=job_id, message=message, data=data or None)


def complete_event(job_id: str, message: str, **data: Any) -> ProgressEvent:
    return ProgressEvent(type="complete", job_id=job_id, message=message, data=data or None)


def error_event(job_id: str, message: str, **data: Any) -> ProgressEvent:
    return ProgressEvent(type="error", job_id=job_id, message=message, data=data or None)


class EventSink(Protocol):
    def emit(self, job_id: str, event: ProgressEvent) -> None:
        ...


Subscriber = Callable[[ProgressEvent], None]


class InMemoryEventSink:
    """Per-job event buffer with subscribers.

    Args:
        max_buffer: Events retained per job for late subscribers
    """

    def __init__(self, max_buffer: int = MAX_BUFFERED_EVENTS):
        self._max_buffer = max_buffer
        self._buffers: Dict[str, Deque[ProgressEvent]] = defaultdict(lambda: deque(maxlen=self._max_buffer))
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def emit(self, job_id: str, event: ProgressEvent) -> None:
        with self._lock:
            self._buffers[job_id].append(event)
            subscribers = list(self._subscribers.get(job_id, ()))
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Event subscriber for job {job_id} failed: {e}")

    def subscribe(self, job_id: str, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber; buffered events are replayed immediately.

        Returns:
            A function that removes the subscriber
        """
        with self._lock:
            self._subscribers[job_id].append(subscriber)
            backlog = list(self._buffers.get(job_id, ()))
        for event in backlog:
            subscriber(event)

        def unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers.get(job_id, []):
                    self._subscribers[job_id].remove(subscriber)

        return unsubscribe

    def events(self, job_id: str) -> List[ProgressEvent]:
        with self._lock:
            return list(self._buffers.get(job_id, ()))

    def clear(self, job_id: str) -> None:
        with self._lock:
            self._buffers.pop(job_id, None)
            self._subscribers.pop(job_id, None)


class LoggingEventSink:
    """Writes every event to the ``stackloom`` log."""

    def emit(self, job_id: str, event: ProgressEvent) -> None:
        level = logging.ERROR if event.type == "error" else logging.INFO
        suffix = f" {json.dumps(event.data, default=str)}" if event.data else ""
        logger.log(level, f"[{job_id}] {event.type}: {event.message}{suffix}")
