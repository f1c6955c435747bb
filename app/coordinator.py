"""Scan coordinator for Network Scanner.

Runs one scan session at a time and decides when it is over. A session
has two sources with different completion signals: the subnet probe
finishes when its batch returns, service discovery finishes when it is
stopped or its timeout fires. The scan is COMPLETED when both are done.

Usage:
    from app.coordinator import ScanCoordinator
    from app.dependencies import create_dependencies

    deps = create_dependencies()
    coordinator = ScanCoordinator.from_dependencies(deps)
    coordinator.start_scan()
    coordinator.wait_until_complete(timeout=15)
    for device in coordinator.devices:
        print(device.ip_address, device.display_name)
"""
import threading
import time
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Set

from app.events import Event, EventBus, EventType
from app.timer import DeferredTask
from config import INTERVALS, SourceUnavailableError, get_logger
from discovery.models import ScanMethod, ScanState, UnifiedDevice
from discovery.prober import SubnetProber
from discovery.reconciler import Reconciler
from discovery.service_listener import ServiceDiscoveryListener

logger = get_logger(__name__)


@dataclass
class ScanSession:
    """State of one scan, recreated on every ``start_scan()``."""
    id: int
    started_at: float = field(default_factory=time.monotonic)
    subnet_prefix: Optional[str] = None
    active_methods: Set[ScanMethod] = field(default_factory=set)
    timeout_task: Optional[DeferredTask] = None
    probe_thread: Optional[threading.Thread] = None

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


class ScanCoordinator:
    """Owns the scan lifecycle and the active-method set.

    Two locks are used. ``_control_lock`` serialises start, stop and the
    service timeout, which call into the listener. ``_state_lock`` guards
    the session and state and is the only one event handlers take, so a
    listener being stopped never waits on a handler that waits on us.

    Attributes:
        prober: Subnet prober for the PROBE source.
        listener: Service discovery listener for the SERVICE source.
        reconciler: Receives results from both sources.
        event_bus: Carries service events in and state changes out.
        service_timeout: Seconds before service discovery is stopped.
    """

    def __init__(
        self,
        prober: SubnetProber,
        listener: ServiceDiscoveryListener,
        reconciler: Reconciler,
        event_bus: EventBus,
        service_timeout: float = INTERVALS.SERVICE_DISCOVERY_TIMEOUT_SECONDS,
        subnet_prefix: Optional[str] = None,
    ):
        self.prober = prober
        self.listener = listener
        self.reconciler = reconciler
        self.event_bus = event_bus
        self.service_timeout = service_timeout
        self.subnet_prefix = subnet_prefix

        self._control_lock = threading.Lock()
        self._state_lock = threading.RLock()
        self._state_changed = threading.Condition(self._state_lock)
        self._state = ScanState.IDLE
        self._session: Optional[ScanSession] = None
        self._last_session_id = 0

        self.event_bus.subscribe(EventType.SERVICE_RESOLVED, self._on_service_resolved)
        self.event_bus.subscribe(EventType.SERVICE_LOST, self._on_service_lost)
        logger.info("ScanCoordinator initialized")

    @classmethod
    def from_dependencies(cls, deps) -> 'ScanCoordinator':
        return cls(
            prober=deps.prober,
            listener=deps.listener,
            reconciler=deps.reconciler,
            event_bus=deps.event_bus,
            service_timeout=deps.settings.service_timeout,
        )

    # ========================================================================
    # Caller surface
    # ========================================================================

    @property
    def state(self) -> ScanState:
        with self._state_lock:
            return self._state

    @property
    def active_methods(self) -> FrozenSet[ScanMethod]:
        with self._state_lock:
            if self._session is None:
                return frozenset()
            return frozenset(self._session.active_methods)

    @property
    def session_id(self) -> Optional[int]:
        with self._state_lock:
            return self._session.id if self._session else None

    @property
    def devices(self) -> List[UnifiedDevice]:
        return self.reconciler.current_view()

    def start_scan(self) -> int:
        """Start a new scan, resetting any scan in progress.

        Returns:
            The new session id.
        """
        with self._control_lock:
            with self._state_lock:
                previous, self._session = self._session, None
            if previous is not None:
                self._teardown(previous)
                # Let events queued for the old session reach the handlers and be dropped
                self.event_bus.drain(timeout=0.5)

            subnet_prefix = self._resolve_subnet()
            service_ok = self._open_listener()

            with self._state_lock:
                self._last_session_id += 1
                session = ScanSession(id=self._last_session_id, subnet_prefix=subnet_prefix)
                self.reconciler.reset()
                self._session = session

                if subnet_prefix is None and not service_ok:
                    logger.error("No discovery source available, scan cannot start")
                    self._set_state(ScanState.ERROR)
                    return session.id

                session.active_methods = {ScanMethod.PROBE, ScanMethod.SERVICE}
                self._set_state(ScanState.SCANNING)
                self._publish_methods(session)

            logger.info(f"Scan session {session.id} started (subnet={subnet_prefix})")

            if subnet_prefix is not None:
                session.probe_thread = threading.Thread(
                    target=self._run_probe,
                    args=(session.id, subnet_prefix),
                    daemon=True,
                    name=f"Probe-{session.id}",
                )
                session.probe_thread.start()
            else:
                with self._state_lock:
                    self._complete_method(session.id, ScanMethod.PROBE)

            registered = self.listener.start() if service_ok else 0
            if registered == 0:
                self._finish_service(session.id, "no registrations")
            else:
                logger.debug(f"Browsing {', '.join(self.listener.active_service_types())}")
                task = DeferredTask(session.id, self.service_timeout, self._on_service_timeout)
                session.timeout_task = task
                task.start()

            return session.id

    def stop_scan(self) -> bool:
        """Stop service discovery for the current scan.

        The probe batch cannot be interrupted and completes on its own.

        Returns:
            True if service discovery was running and has been stopped.
        """
        with self._control_lock:
            with self._state_lock:
                session = self._session
                if session is None or ScanMethod.SERVICE not in session.active_methods:
                    logger.debug("stop_scan: service discovery not running")
                    return False
            return self._finish_service(session.id, "stopped")

    def wait_until_complete(self, timeout: Optional[float] = None) -> bool:
        """Block until the current scan is no longer SCANNING.

        Returns:
            True if the scan finished within ``timeout``.
        """
        with self._state_changed:
            return self._state_changed.wait_for(
                lambda: self._state is not ScanState.SCANNING, timeout
            )

    def shutdown(self) -> None:
        """Stop any scan and release the sources."""
        logger.info("Shutting down ScanCoordinator...")
        self.stop_scan()
        with self._state_lock:
            session = self._session
        if session is not None and session.probe_thread is not None:
            session.probe_thread.join(timeout=5.0)

        self.event_bus.unsubscribe(EventType.SERVICE_RESOLVED, self._on_service_resolved)
        self.event_bus.unsubscribe(EventType.SERVICE_LOST, self._on_service_lost)
        self.listener.close()
        logger.info("ScanCoordinator shut down")

    # ========================================================================
    # Source start-up
    # ========================================================================

    def _resolve_subnet(self) -> Optional[str]:
        if self.subnet_prefix:
            return self.subnet_prefix
        try:
            return self.prober.local_subnet_prefix()
        except SourceUnavailableError as e:
            logger.warning(f"Subnet probe unavailable: {e}")
            return None

    def _open_listener(self) -> bool:
        try:
            self.listener.open()
        except SourceUnavailableError as e:
            logger.warning(f"Service discovery unavailable: {e}")
            return False
        return True

    def _teardown(self, session: ScanSession) -> None:
        """Stop what an abandoned session left running. Caller holds _control_lock."""
        if session.timeout_task is not None:
            session.timeout_task.cancel()
        if ScanMethod.SERVICE in session.active_methods:
            self.listener.stop()
        logger.info(f"Scan session {session.id} superseded")

    # ========================================================================
    # Completion
    # ========================================================================

    def _run_probe(self, session_id: int, subnet_prefix: str) -> None:
        try:
            results = self.prober.scan(subnet_prefix)
        except Exception as e:
            logger.error(f"Subnet probe failed: {e}", exc_info=True)
            results = []

        with self._state_lock:
            if not self._is_current(session_id):
                logger.debug(f"Discarding probe results of session {session_id}")
                return
            self.reconciler.on_probe_batch(results)
            self.event_bus.publish(
                EventType.PROBE_BATCH_COMPLETED,
                {"session_id": session_id, "count": len(results)},
                source="coordinator",
            )
            self._complete_method(session_id, ScanMethod.PROBE)

    def _on_service_timeout(self, session_id: int) -> None:
        with self._control_lock:
            self._finish_service(session_id, "timeout")

    def _finish_service(self, session_id: int, reason: str) -> bool:
        """Stop the listener and drop SERVICE. Caller holds _control_lock."""
        with self._state_lock:
            session = self._session
            if (session is None or session.id != session_id
                    or ScanMethod.SERVICE not in session.active_methods):
                return False
            task = session.timeout_task

        if task is not None:
            task.cancel()
        self.listener.stop()

        with self._state_lock:
            completed = self._complete_method(session_id, ScanMethod.SERVICE)
        if completed:
            logger.info(f"Service discovery finished for session {session_id} ({reason})")
        return completed

    def _complete_method(self, session_id: int, method: ScanMethod) -> bool:
        """Remove ``method`` from the active set. Caller holds _state_lock."""
        session = self._session
        if session is None or session.id != session_id:
            logger.debug(f"Ignoring {method.value} completion of stale session {session_id}")
            return False
        if method not in session.active_methods:
            return False

        session.active_methods.discard(method)
        self._publish_methods(session)

        if not session.active_methods and self._state is ScanState.SCANNING:
            logger.info(
                f"Scan session {session_id} completed in {session.elapsed:.1f}s, "
                f"{len(self.reconciler)} devices"
            )
            self._set_state(ScanState.COMPLETED)
        return True

    def _is_current(self, session_id: int) -> bool:
        return self._session is not None and self._session.id == session_id

    # ========================================================================
    # Service events
    # ========================================================================

    def _service_accepting(self) -> bool:
        return (self._session is not None
                and ScanMethod.SERVICE in self._session.active_methods)

    def _on_service_resolved(self, event: Event) -> None:
        service_event = event.data.get("event")
        if service_event is None or not service_event.ip or service_event.record is None:
            return
        with self._state_lock:
            if not self._service_accepting():
                logger.debug(f"Dropping late service {service_event.service_name}")
                return
            self.reconciler.on_service_resolved(service_event.ip, service_event.record)

    def _on_service_lost(self, event: Event) -> None:
        service_event = event.data.get("event")
        if service_event is None or not service_event.ip:
            return
        with self._state_lock:
            if not self._service_accepting():
                return
            self.reconciler.on_service_lost(service_event.ip)

    # ========================================================================
    # Publishing
    # ========================================================================

    def _set_state(self, new_state: ScanState) -> None:
        previous = self._state
        if previous is new_state:
            return
        self._state = new_state
        logger.debug(f"Scan state {previous.value} -> {new_state.value}")
        self.event_bus.publish(
            EventType.SCAN_STATE_CHANGED,
            {
                "state": new_state,
                "previous": previous,
                "session_id": self._session.id if self._session else None,
            },
            source="coordinator",
        )
        self._state_changed.notify_all()

    def _publish_methods(self, session: ScanSession) -> None:
        self.event_bus.publish(
            EventType.SCAN_METHODS_CHANGED,
            {"session_id": session.id, "active_methods": frozenset(session.active_methods)},
            source="coordinator",
        )
