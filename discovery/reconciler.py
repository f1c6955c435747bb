"""Merge probe results and resolved services into one device list.

The reconciler owns two keyed collections (probe results by IP, service
records by IP) and the set of methods that reported each IP during the
session. Every update recomputes the whole list, sorts it by last octet
and publishes it; with at most 254 addresses the full recompute is cheap.
"""
import re
import threading
from typing import Dict, Iterable, List, Optional, Set, Tuple

from app.events import EventBus, EventType
from config import get_logger
from discovery.models import DiscoveryMethod, ProbeResult, ServiceRecord, UnifiedDevice
from discovery.vendor import VendorResolver

logger = get_logger(__name__)

# "Office Printer [b8:27:eb:11:22:33]"
_MAC_TOKEN = re.compile(r'\s*\[([0-9a-fA-F]{2}:){5}[0-9a-fA-F]{2}\]')
# A bare "._foo" artifact or "_ipp._tcp.local." type, or a trailing "._ipp._tcp.local." suffix
_TYPE_FRAGMENT = re.compile(
    r'^\._.*|^_\S*\.local\.?$|\._[^.\s]+\._(?:tcp|udp)\.local\.?$'
)


def clean_service_name(name: str) -> str:
    """Human-readable name from a service instance name.

    Falls back to ``name`` unchanged when nothing is left after cleaning.

    Examples:
        >>> clean_service_name("MyPrinter [b8:27:eb:11:22:33]")
        'MyPrinter'
        >>> clean_service_name("_ipp._tcp.local.")
        '_ipp._tcp.local.'
    """
    cleaned = _MAC_TOKEN.sub('', name)
    cleaned = _TYPE_FRAGMENT.sub('', cleaned).strip()
    return cleaned or name


class Reconciler:
    """Single owner of the per-session discovery state.

    All mutation, recompute and publish happen under one re-entrant lock,
    so observers always receive complete lists in update order.

    Attributes:
        event_bus: Receives ``DEVICES_UPDATED`` after every recompute.
        vendor_resolver: Maps MAC addresses to vendor names.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        vendor_resolver: Optional[VendorResolver] = None,
    ):
        self.event_bus = event_bus
        self.vendor_resolver = vendor_resolver
        self._lock = threading.RLock()
        self._probe_results: Dict[str, ProbeResult] = {}
        self._service_records: Dict[str, List[ServiceRecord]] = {}
        self._seen_methods: Dict[str, Set[DiscoveryMethod]] = {}
        self._view: Tuple[UnifiedDevice, ...] = ()

    # ========================================================================
    # Updates
    # ========================================================================

    def on_probe_batch(self, results: Iterable[ProbeResult]) -> None:
        """Record a batch of probe results. Unreachable entries are ignored."""
        with self._lock:
            for result in results:
                if not result.reachable:
                    continue
                previous = self._probe_results.get(result.ip)
                if previous is not None:
                    # Keep what the earlier probe knew if this one came back empty
                    result = ProbeResult(
                        ip=result.ip,
                        hostname=result.hostname or previous.hostname,
                        reachable=True,
                        mac_address=result.mac_address or previous.mac_address,
                    )
                self._probe_results[result.ip] = result
                self._seen_methods.setdefault(result.ip, set()).add(DiscoveryMethod.PROBE)
            self._recompute()

    def on_service_resolved(self, ip: str, record: ServiceRecord) -> None:
        """Record one resolved service under its cleaned name.

        A duplicate (name, type, port) is a no-op.
        """
        record = ServiceRecord(clean_service_name(record.name), record.type, record.port)
        with self._lock:
            records = self._service_records.setdefault(ip, [])
            if record not in records:
                records.append(record)
            self._seen_methods.setdefault(ip, set()).add(DiscoveryMethod.SERVICE)
            self._recompute()

    def on_service_lost(self, ip: str) -> None:
        """Drop every service record of ``ip``.

        An IP that was never probed has no source left afterwards and
        leaves the view.
        """
        with self._lock:
            if self._service_records.pop(ip, None) is None:
                logger.debug(f"Lost event for {ip} with no services recorded")
                return
            if ip not in self._probe_results:
                self._seen_methods.pop(ip, None)
            self._recompute()

    def reset(self) -> None:
        """Clear everything for a new session and publish the empty list."""
        with self._lock:
            self._probe_results.clear()
            self._service_records.clear()
            self._seen_methods.clear()
            self._recompute()

    # ========================================================================
    # Queries
    # ========================================================================

    def current_view(self) -> List[UnifiedDevice]:
        with self._lock:
            return list(self._view)

    def __len__(self) -> int:
        with self._lock:
            return len(self._view)

    # ========================================================================
    # Recompute
    # ========================================================================

    def _recompute(self) -> None:
        devices: Dict[str, UnifiedDevice] = {}

        for ip, probe in self._probe_results.items():
            vendor = self._lookup_vendor(probe.mac_address)
            devices[ip] = UnifiedDevice(
                ip_address=ip,
                hostname=probe.hostname,
                mac_address=probe.mac_address,
                vendor=vendor,
                is_reachable=True,
                services=(),
                discovery_methods=frozenset(self._methods_for(ip)),
            )

        for ip, records in self._service_records.items():
            if not records:
                continue
            existing = devices.get(ip)
            fallback_name = records[0].name
            if existing is None:
                devices[ip] = UnifiedDevice(
                    ip_address=ip,
                    hostname=fallback_name,
                    is_reachable=True,
                    services=tuple(records),
                    discovery_methods=frozenset(self._methods_for(ip)),
                )
                continue
            devices[ip] = UnifiedDevice(
                ip_address=ip,
                hostname=existing.hostname or fallback_name,
                mac_address=existing.mac_address,
                vendor=existing.vendor,
                is_reachable=True,
                services=tuple(records),
                discovery_methods=frozenset(self._methods_for(ip)),
            )

        ordered = sorted(devices.values(), key=lambda d: d.last_octet)
        self._view = tuple(ordered)
        self._publish()

    def _methods_for(self, ip: str) -> Set[DiscoveryMethod]:
        methods = set(self._seen_methods.get(ip, ()))
        if ip in self._probe_results:
            methods.add(DiscoveryMethod.PROBE)
        if self._service_records.get(ip):
            methods.add(DiscoveryMethod.SERVICE)
        return methods

    def _lookup_vendor(self, mac_address: Optional[str]) -> Optional[str]:
        if not mac_address or self.vendor_resolver is None:
            return None
        return self.vendor_resolver.lookup(mac_address)

    def _publish(self) -> None:
        if self.event_bus is None:
            return
        devices = list(self._view)
        self.event_bus.publish(
            EventType.DEVICES_UPDATED,
            {"devices": devices, "count": len(devices)},
            source="reconciler",
        )
