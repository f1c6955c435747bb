"""mDNS/DNS-SD backend built on the ``zeroconf`` library.

One ``Zeroconf`` instance (IPv4 only) is shared by every browse. Browser
handlers run on zeroconf's own threads and only forward a
``DiscoveryNotification`` to the sink; resolution happens later on the
listener's executor through ``resolve()``.
"""
import threading
from typing import Any, Optional

from zeroconf import Error as ZeroconfError
from zeroconf import IPVersion, ServiceBrowser, ServiceStateChange, Zeroconf

from config import (
    DiscoveryRegistrationError,
    ResolutionError,
    SourceUnavailableError,
    StaleListenerError,
    get_logger,
)
from discovery.service_listener import (
    DiscoveryNotification,
    NotificationKind,
    NotificationSink,
    ResolvedService,
    ServiceDiscoveryBackend,
    instance_name,
)

logger = get_logger(__name__)

_STATE_TO_KIND = {
    ServiceStateChange.Added: NotificationKind.FOUND,
    ServiceStateChange.Updated: NotificationKind.FOUND,
    ServiceStateChange.Removed: NotificationKind.LOST,
}


class ZeroconfBackend(ServiceDiscoveryBackend):
    """Service discovery backend for the ``zeroconf`` package."""

    def __init__(self, zeroconf_factory=None):
        self._factory = zeroconf_factory or (lambda: Zeroconf(ip_version=IPVersion.V4Only))
        self._zc: Optional[Zeroconf] = None
        self._lock = threading.Lock()

    def open(self) -> None:
        with self._lock:
            if self._zc is not None:
                return
            try:
                self._zc = self._factory()
            except (OSError, ZeroconfError) as e:
                raise SourceUnavailableError(
                    "Cannot open mDNS socket", {"error": str(e)}
                ) from e
            logger.debug("Zeroconf instance opened")

    def _zeroconf(self) -> Zeroconf:
        self.open()
        return self._zc

    def register(self, service_type: str, sink: NotificationSink) -> Any:
        zc = self._zeroconf()

        def on_service_state_change(
            zeroconf: Zeroconf,
            service_type: str,
            name: str,
            state_change: ServiceStateChange,
        ) -> None:
            kind = _STATE_TO_KIND.get(state_change)
            if kind is not None:
                sink(DiscoveryNotification(kind, service_type, name))

        try:
            browser = ServiceBrowser(zc, service_type, handlers=[on_service_state_change])
        except (ZeroconfError, OSError, RuntimeError) as e:
            raise DiscoveryRegistrationError(
                "Browse failed to start", service_type=service_type, details={"error": str(e)}
            ) from e

        sink(DiscoveryNotification(NotificationKind.STARTED, service_type))
        return browser

    def resolve(self, service_type: str, name: str, timeout: float) -> ResolvedService:
        zc = self._zeroconf()
        try:
            info = zc.get_service_info(service_type, name, timeout=int(timeout * 1000))
        except (ZeroconfError, OSError, RuntimeError) as e:
            raise ResolutionError("Service lookup failed", {"name": name, "error": str(e)}) from e

        if info is None:
            raise ResolutionError("No answer", {"name": name, "timeout": timeout})

        addresses = info.parsed_addresses(IPVersion.V4Only)
        if not addresses:
            raise ResolutionError("No IPv4 address", {"name": name})
        if info.port is None:
            raise ResolutionError("No port", {"name": name})

        return ResolvedService(
            name=instance_name(name, service_type),
            service_type=service_type,
            ip=addresses[0],
            port=info.port,
        )

    def unregister(self, token: Any) -> None:
        try:
            token.cancel()
        except (ZeroconfError, RuntimeError) as e:
            raise StaleListenerError("Browser already cancelled", {"error": str(e)}) from e

    def close(self) -> None:
        with self._lock:
            zc, self._zc = self._zc, None
        if zc is not None:
            zc.close()
            logger.debug("Zeroconf instance closed")
