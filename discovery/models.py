"""Data model shared by the discovery sources, the reconciler and the coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Tuple


class DiscoveryMethod(Enum):
    """Source that reported a device."""
    PROBE = "probe"
    SERVICE = "service"


class ScanMethod(Enum):
    """Source that is still in flight during a scan."""
    PROBE = "probe"
    SERVICE = "service"


class ScanState(Enum):
    """Lifecycle of one scan session."""
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"
    ERROR = "error"


class ServiceEventKind(Enum):
    FOUND = "found"
    RESOLVED = "resolved"
    LOST = "lost"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing a single address.

    Attributes:
        ip: Dotted-quad address that was probed.
        hostname: Reverse-DNS name, or None when there is no real name.
        reachable: Whether the host answered.
        mac_address: Hardware address, only known when the ARP cache had it.
    """
    ip: str
    hostname: Optional[str] = None
    reachable: bool = False
    mac_address: Optional[str] = None


@dataclass(frozen=True)
class ServiceRecord:
    """One advertised service on a device."""
    name: str
    type: str
    port: int


@dataclass(frozen=True)
class ServiceEvent:
    """A found/resolved/lost notification from service discovery.

    Only RESOLVED events carry a usable ``ip`` and ``port``. LOST events
    carry the IP the service had resolved to, when it was resolved at all.
    """
    kind: ServiceEventKind
    service_name: str
    service_type: str
    ip: Optional[str] = None
    port: Optional[int] = None

    @property
    def record(self) -> Optional[ServiceRecord]:
        if self.port is None:
            return None
        return ServiceRecord(name=self.service_name, type=self.service_type, port=self.port)


@dataclass(frozen=True)
class UnifiedDevice:
    """A device as seen by every source that reported its IP address."""
    ip_address: str
    hostname: Optional[str] = None
    mac_address: Optional[str] = None
    vendor: Optional[str] = None
    is_reachable: bool = True
    services: Tuple[ServiceRecord, ...] = ()
    discovery_methods: FrozenSet[DiscoveryMethod] = field(default_factory=frozenset)

    @property
    def last_octet(self) -> int:
        """Numeric last octet, 0 when it is missing or not a number."""
        tail = self.ip_address.rsplit('.', 1)[-1]
        return int(tail) if tail.isdecimal() else 0

    @property
    def display_name(self) -> str:
        """Best display name: hostname, then vendor, then IP."""
        if self.hostname and self.hostname != self.ip_address:
            return self.hostname
        if self.vendor:
            return self.vendor
        return self.ip_address

    def to_dict(self) -> dict:
        return {
            "ip_address": self.ip_address,
            "hostname": self.hostname,
            "mac_address": self.mac_address,
            "vendor": self.vendor,
            "is_reachable": self.is_reachable,
            "services": [
                {"name": s.name, "type": s.type, "port": s.port} for s in self.services
            ],
            "discovery_methods": sorted(m.value for m in self.discovery_methods),
        }
