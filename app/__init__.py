"""Application module for Network Scanner.

Contains the plumbing the scan components share:
- EventBus: Internal event communication
- DeferredTask: One-shot session timeout

The coordinator and dependency wiring live in ``app.coordinator`` and
``app.dependencies``; import them from there.
"""

from app.events import Event, EventBus, EventType
from app.timer import DeferredTask

__all__ = [
    "DeferredTask",
    "Event",
    "EventBus",
    "EventType",
]
