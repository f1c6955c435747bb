"""One-shot deferred callbacks tied to a scan session.

Usage:
    from app.timer import DeferredTask

    task = DeferredTask(session_id=3, delay=10.0, callback=on_timeout)
    task.start()
    ...
    task.cancel()   # before it fires, the callback never runs
"""

import threading
from typing import Callable, Optional

from config import get_logger

logger = get_logger(__name__)


class DeferredTask:
    """Runs ``callback(session_id)`` once after ``delay`` seconds unless cancelled.

    The waiting thread blocks on a cancel event rather than sleeping, so
    ``cancel()`` takes effect immediately. ``cancel()`` never joins the
    thread and is safe to call from inside the callback.

    Attributes:
        session_id: Scan session the callback belongs to.
        delay: Seconds to wait before firing.
    """

    def __init__(self, session_id: int, delay: float, callback: Callable[[int], None]):
        self.session_id = session_id
        self.delay = delay
        self._callback = callback
        self._cancelled = threading.Event()
        self._fired = False
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self) -> None:
        """Start waiting in a daemon thread. Starting twice is a no-op."""
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run,
                daemon=True,
                name=f"DeferredTask-{self.session_id}",
            )
            self._thread.start()
        logger.debug(f"Deferred task for session {self.session_id} armed ({self.delay}s)")

    def cancel(self) -> bool:
        """Cancel the task.

        Returns:
            True if the callback had not fired yet.
        """
        with self._lock:
            self._cancelled.set()
            return not self._fired

    def _run(self) -> None:
        if self._cancelled.wait(self.delay):
            logger.debug(f"Deferred task for session {self.session_id} cancelled")
            return

        with self._lock:
            if self._cancelled.is_set():
                return
            self._fired = True

        try:
            self._callback(self.session_id)
        except Exception as e:
            logger.error(f"Deferred task for session {self.session_id} failed: {e}", exc_info=True)
