"""Event bus for internal application communication.

Discovery sources never call each other directly: the service listener
publishes service events, the coordinator subscribes to them, and the
reconciler and coordinator publish device-list and scan-state changes
for whatever presentation layer is attached.

Usage:
    from app.events import EventBus, EventType

    bus = EventBus()
    bus.subscribe(EventType.DEVICES_UPDATED, lambda e: print(e.data["count"]))
    bus.publish(EventType.DEVICES_UPDATED, {"devices": [], "count": 0})
"""
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional

from config import get_logger

logger = get_logger(__name__)


class EventType(Enum):
    """Types of events that can be published/subscribed."""

    # Service discovery events
    SERVICE_FOUND = auto()
    SERVICE_RESOLVED = auto()
    SERVICE_LOST = auto()

    # Probe events
    PROBE_BATCH_COMPLETED = auto()

    # Reconciled view
    DEVICES_UPDATED = auto()

    # Scan lifecycle events
    SCAN_STATE_CHANGED = auto()
    SCAN_METHODS_CHANGED = auto()


@dataclass
class Event:
    """Represents an event with type and data.

    Attributes:
        event_type: The type of event.
        data: Optional dictionary with event-specific data.
        timestamp: When the event was created.
        source: Optional identifier of the event source.
    """
    event_type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    source: Optional[str] = None

    def __str__(self) -> str:
        return f"Event({self.event_type.name}, data={self.data})"


# Type alias for event handlers
EventHandler = Callable[[Event], None]


class EventBus:
    """Thread-safe publish/subscribe event bus.

    In async mode (the default) events are queued and dispatched in
    publish order by one worker thread. Sync mode dispatches on the
    publishing thread, which keeps tests deterministic.

    Example:
        >>> bus = EventBus(async_mode=False)
        >>> bus.subscribe(EventType.SCAN_STATE_CHANGED, lambda e: print(e.data))
        >>> bus.publish(EventType.SCAN_STATE_CHANGED, {"state": "scanning"})
    """

    def __init__(self, async_mode: bool = True):
        self._subscribers: Dict[EventType, List[EventHandler]] = {}
        self._lock = threading.Lock()
        self._async_mode = async_mode
        self._event_queue: queue.Queue = queue.Queue()
        self._running = False
        self._worker_thread: Optional[threading.Thread] = None

        if async_mode:
            self._start_worker()

    @property
    def async_mode(self) -> bool:
        return self._async_mode

    def _start_worker(self) -> None:
        """Start the background event processing thread."""
        self._running = True
        self._worker_thread = threading.Thread(
            target=self._process_events,
            daemon=True,
            name="EventBus-Worker"
        )
        self._worker_thread.start()
        logger.debug("EventBus worker thread started")

    def _process_events(self) -> None:
        """Process events from the queue in background thread."""
        while self._running:
            try:
                event = self._event_queue.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self._dispatch_event(event)
            finally:
                self._event_queue.task_done()

    def _dispatch_event(self, event: Event) -> None:
        """Dispatch event to all subscribers."""
        with self._lock:
            handlers = self._subscribers.get(event.event_type, []).copy()

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Error in event handler for {event.event_type.name}: {e}",
                    exc_info=True
                )

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe ``handler`` to ``event_type``."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed to {event_type.name}")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> bool:
        """Unsubscribe from an event type.

        Returns:
            True if handler was found and removed, False otherwise.
        """
        with self._lock:
            try:
                self._subscribers.get(event_type, []).remove(handler)
            except ValueError:
                return False
        logger.debug(f"Unsubscribed from {event_type.name}")
        return True

    def publish(self, event_type: EventType, data: Dict[str, Any] = None,
                source: str = None) -> None:
        """Publish an event (queued in async mode, immediate in sync mode)."""
        event = Event(
            event_type=event_type,
            data=data or {},
            source=source
        )

        if self._async_mode:
            self._event_queue.put(event)
        else:
            self._dispatch_event(event)

    def drain(self, timeout: float = 1.0) -> bool:
        """Wait until queued events have been dispatched.

        Returns:
            True if the queue emptied within ``timeout``.
        """
        if not self._async_mode:
            return True
        done = threading.Event()

        def _wait() -> None:
            self._event_queue.join()
            done.set()

        threading.Thread(target=_wait, daemon=True).start()
        return done.wait(timeout)

    def get_subscriber_count(self, event_type: EventType) -> int:
        """Get the number of subscribers for an event type."""
        with self._lock:
            return len(self._subscribers.get(event_type, []))

    def shutdown(self) -> None:
        """Shutdown the event bus and stop the worker thread."""
        self._running = False
        if self._worker_thread:
            self._worker_thread.join(timeout=1.0)
        logger.debug("EventBus shut down")
