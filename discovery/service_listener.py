"""DNS-SD service discovery listener.

The listener owns one browse registration per catalogued service type
and talks to the OS (or library) capability through the
``ServiceDiscoveryBackend`` port. The backend reports back by sending
``DiscoveryNotification`` messages to ``ServiceDiscoveryListener.handle``;
the listener resolves found services on its own executor and publishes
``ServiceEvent``s on the event bus.

Lost services are reported by the IP they had resolved to. The reconciler
drops every service of that IP, not only the lost one.
"""
import abc
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from app.events import EventBus, EventType
from config import (
    INTERVALS,
    NETWORK,
    DiscoveryRegistrationError,
    ResolutionError,
    SourceUnavailableError,
    StaleListenerError,
    get_logger,
)
from discovery.models import ServiceEvent, ServiceEventKind

logger = get_logger(__name__)


class NotificationKind(Enum):
    STARTED = "started"
    FOUND = "found"
    LOST = "lost"
    START_FAILED = "start_failed"
    STOP_FAILED = "stop_failed"


@dataclass(frozen=True)
class DiscoveryNotification:
    """Message sent by a backend about one registration."""
    kind: NotificationKind
    service_type: str
    name: Optional[str] = None
    error_code: Optional[int] = None


@dataclass(frozen=True)
class ResolvedService:
    """A service resolved to a concrete IPv4 address and port."""
    name: str
    service_type: str
    ip: str
    port: int


NotificationSink = Callable[[DiscoveryNotification], None]


class ServiceDiscoveryBackend(abc.ABC):
    """Port to the platform's service discovery capability."""

    def open(self) -> None:
        """Acquire sockets/handles. Raises SourceUnavailableError."""

    @abc.abstractmethod
    def register(self, service_type: str, sink: NotificationSink) -> Any:
        """Start browsing ``service_type``; return a token for ``unregister``.

        Raises:
            DiscoveryRegistrationError: The browse could not be started.
        """

    @abc.abstractmethod
    def resolve(self, service_type: str, name: str, timeout: float) -> ResolvedService:
        """Resolve a found service.

        Raises:
            ResolutionError: No usable answer within ``timeout``.
        """

    @abc.abstractmethod
    def unregister(self, token: Any) -> None:
        """Stop a browse.

        Raises:
            StaleListenerError: The registration was already torn down.
        """

    def close(self) -> None:
        """Release everything acquired by ``open``."""


def normalize_service_type(service_type: str) -> str:
    """``_smb._tcp.local.`` -> ``_smb._tcp``."""
    stripped = service_type.rstrip('.')
    if stripped.endswith('.local'):
        stripped = stripped[: -len('.local')]
    return stripped


def instance_name(name: str, service_type: str) -> str:
    """Instance label of a full service name (``nas._smb._tcp.local.`` -> ``nas``)."""
    suffix = '.' + service_type
    if service_type and name.endswith(suffix):
        return name[: -len(suffix)]
    return name


class ServiceDiscoveryListener:
    """Browses the service-type catalog and publishes service events.

    Each type is registered independently: one failing registration is
    logged and the rest carry on. ``stop()`` is idempotent and anything
    the backend reports after it is dropped.

    Example:
        >>> listener = ServiceDiscoveryListener(ZeroconfBackend(), bus)
        >>> listener.start()
        17
        >>> listener.is_active()
        True
        >>> listener.stop()
    """

    def __init__(
        self,
        backend: ServiceDiscoveryBackend,
        event_bus: EventBus,
        service_types: Iterable[str] = NETWORK.SERVICE_TYPES,
        resolve_timeout: float = INTERVALS.RESOLVE_TIMEOUT_SECONDS,
        resolve_executor: Optional[Executor] = None,
    ):
        self.backend = backend
        self.event_bus = event_bus
        self.service_types: Tuple[str, ...] = tuple(service_types)
        self.resolve_timeout = resolve_timeout
        self._executor = resolve_executor
        self._owns_executor = resolve_executor is None

        self._lock = threading.Lock()
        self._registrations: Dict[str, Any] = {}
        self._failed_types: Set[str] = set()
        self._resolved_ips: Dict[Tuple[str, str], str] = {}
        self._accepting = False
        self._generation = 0

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def open(self) -> None:
        """Open the backend.

        Raises:
            SourceUnavailableError: Service discovery cannot run on this host.
        """
        self.backend.open()

    def start(self) -> int:
        """Register every catalogued service type.

        Returns:
            Number of registrations that are live afterwards.
        """
        with self._lock:
            if self._accepting:
                logger.debug("Service discovery already active")
                return len(self._registrations)
            self._generation += 1
            generation = self._generation
            self._accepting = True
            self._failed_types.clear()
            self._resolved_ips.clear()
            if self._owns_executor and self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=NETWORK.RESOLVE_WORKERS, thread_name_prefix="resolve"
                )

        for service_type in self.service_types:
            try:
                token = self.backend.register(service_type, self.handle)
            except SourceUnavailableError as e:
                logger.warning(f"Service discovery unavailable: {e}")
                break
            except DiscoveryRegistrationError as e:
                logger.warning(f"Discovery failed to start: {e}")
                continue
            except Exception as e:
                error = DiscoveryRegistrationError(str(e), service_type=service_type)
                logger.warning(f"Discovery failed to start: {error}", exc_info=True)
                continue

            with self._lock:
                current = generation == self._generation
                failed = service_type in self._failed_types
                if current and not failed:
                    self._registrations[service_type] = token
            if not current or failed:
                # stop() ran, or START_FAILED arrived, while we were registering
                self._unregister(service_type, token)

        with self._lock:
            count = len(self._registrations)
        logger.info(f"Service discovery started: {count}/{len(self.service_types)} types")
        return count

    def stop(self) -> None:
        """Unregister everything. Safe to call when nothing is active."""
        with self._lock:
            if not self._accepting and not self._registrations:
                logger.debug("Discovery not active, nothing to stop")
                return
            self._accepting = False
            self._generation += 1
            registrations = list(self._registrations.items())
            self._registrations.clear()
            self._resolved_ips.clear()

        for service_type, token in registrations:
            self._unregister(service_type, token)
        logger.info("Service discovery stopped")

    def is_active(self) -> bool:
        with self._lock:
            return bool(self._registrations)

    def active_service_types(self) -> List[str]:
        with self._lock:
            return sorted(self._registrations)

    def close(self) -> None:
        """Stop, shut down the resolver pool and close the backend."""
        self.stop()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        self.backend.close()

    def _unregister(self, service_type: str, token: Any) -> None:
        try:
            self.backend.unregister(token)
        except StaleListenerError as e:
            logger.warning(f"Discovery listener for {service_type} already torn down: {e}")
        except Exception as e:
            logger.warning(f"Error stopping discovery for {service_type}: {e}")

    # ========================================================================
    # Backend notifications
    # ========================================================================

    def handle(self, notification: DiscoveryNotification) -> None:
        """Entry point for every message the backend sends."""
        with self._lock:
            if not self._accepting:
                logger.debug(f"Dropping {notification.kind.value} after stop")
                return
            generation = self._generation

        kind = notification.kind
        if kind is NotificationKind.STARTED:
            logger.debug(f"Discovery started for {notification.service_type}")
        elif kind is NotificationKind.FOUND:
            self._on_found(notification, generation)
        elif kind is NotificationKind.LOST:
            self._on_lost(notification)
        elif kind is NotificationKind.START_FAILED:
            self._on_start_failed(notification)
        elif kind is NotificationKind.STOP_FAILED:
            error = DiscoveryRegistrationError(
                "Discovery failed to stop",
                service_type=notification.service_type,
                error_code=notification.error_code,
            )
            logger.warning(str(error))
            with self._lock:
                self._registrations.pop(notification.service_type, None)

    def _on_found(self, notification: DiscoveryNotification, generation: int) -> None:
        name = instance_name(notification.name or "", notification.service_type)
        logger.debug(f"Service found: {name} ({notification.service_type})")
        self._publish(EventType.SERVICE_FOUND, ServiceEvent(
            kind=ServiceEventKind.FOUND,
            service_name=name,
            service_type=normalize_service_type(notification.service_type),
        ))

        executor = self._executor
        if executor is None:
            return
        try:
            executor.submit(self._resolve, notification, generation)
        except RuntimeError as e:
            # Executor shut down underneath us
            logger.debug(f"Resolve for {name} not scheduled: {e}")

    def _resolve(self, notification: DiscoveryNotification, generation: int) -> None:
        key = (notification.service_type, notification.name or "")
        try:
            resolved = self.backend.resolve(
                notification.service_type, notification.name or "", self.resolve_timeout
            )
        except ResolutionError as e:
            logger.warning(f"Resolve failed for {notification.name}: {e}")
            return
        except Exception as e:
            logger.warning(f"Resolve failed for {notification.name}: {e}", exc_info=True)
            return

        if not resolved.ip or resolved.port is None:
            logger.warning(f"Resolve for {notification.name} returned no address")
            return

        with self._lock:
            if generation != self._generation or not self._accepting:
                logger.debug(f"Dropping late resolution of {notification.name}")
                return
            self._resolved_ips[key] = resolved.ip

        logger.debug(f"Resolved service: {resolved.name} at {resolved.ip}:{resolved.port}")
        self._publish(EventType.SERVICE_RESOLVED, ServiceEvent(
            kind=ServiceEventKind.RESOLVED,
            service_name=resolved.name,
            service_type=normalize_service_type(resolved.service_type),
            ip=resolved.ip,
            port=resolved.port,
        ))

    def _on_lost(self, notification: DiscoveryNotification) -> None:
        key = (notification.service_type, notification.name or "")
        with self._lock:
            ip = self._resolved_ips.pop(key, None)
        if ip is None:
            logger.debug(f"Lost unresolved service {notification.name}")
            return
        logger.debug(f"Service lost: {notification.name} at {ip}")
        self._publish(EventType.SERVICE_LOST, ServiceEvent(
            kind=ServiceEventKind.LOST,
            service_name=instance_name(notification.name or "", notification.service_type),
            service_type=normalize_service_type(notification.service_type),
            ip=ip,
        ))

    def _on_start_failed(self, notification: DiscoveryNotification) -> None:
        error = DiscoveryRegistrationError(
            "Discovery failed to start",
            service_type=notification.service_type,
            error_code=notification.error_code,
        )
        logger.warning(str(error))
        with self._lock:
            self._failed_types.add(notification.service_type)
            token = self._registrations.pop(notification.service_type, None)
        if token is not None:
            self._unregister(notification.service_type, token)

    def _publish(self, event_type: EventType, event: ServiceEvent) -> None:
        self.event_bus.publish(event_type, {"event": event}, source="service_listener")
