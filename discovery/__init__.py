"""Device discovery components.

This package finds devices on the local /24 from two sources and merges
what they report.

Modules:
    models: Probe results, service events and unified devices
    host_probe: Single-host reachability, reverse DNS, own address, ARP cache
    prober: Concurrent probe of the whole subnet
    service_listener: DNS-SD browsing through a backend port
    zeroconf_backend: The ``zeroconf`` library as a backend
    reconciler: Merge of both sources into one list keyed by IP
    vendor: MAC prefix to vendor name

Example:
    >>> from discovery import SubnetProber, Reconciler
    >>> reconciler = Reconciler()
    >>> reconciler.on_probe_batch(SubnetProber().scan())
    >>> for device in reconciler.current_view():
    ...     print(device.ip_address, device.display_name)
"""
from .host_probe import HostProbe, get_local_ipv4, read_arp_table
from .models import (
    DiscoveryMethod,
    ProbeResult,
    ScanMethod,
    ScanState,
    ServiceEvent,
    ServiceEventKind,
    ServiceRecord,
    UnifiedDevice,
)
from .prober import SubnetProber
from .reconciler import Reconciler, clean_service_name
from .service_listener import (
    DiscoveryNotification,
    NotificationKind,
    ResolvedService,
    ServiceDiscoveryBackend,
    ServiceDiscoveryListener,
)
from .vendor import VendorResolver, get_vendor_resolver, normalize_mac
from .zeroconf_backend import ZeroconfBackend

__all__ = [
    # Models
    "DiscoveryMethod",
    "ProbeResult",
    "ScanMethod",
    "ScanState",
    "ServiceEvent",
    "ServiceEventKind",
    "ServiceRecord",
    "UnifiedDevice",
    # Probing
    "HostProbe",
    "SubnetProber",
    "get_local_ipv4",
    "read_arp_table",
    # Service discovery
    "DiscoveryNotification",
    "NotificationKind",
    "ResolvedService",
    "ServiceDiscoveryBackend",
    "ServiceDiscoveryListener",
    "ZeroconfBackend",
    # Reconciliation
    "Reconciler",
    "clean_service_name",
    # Vendors
    "VendorResolver",
    "get_vendor_resolver",
    "normalize_mac",
]
