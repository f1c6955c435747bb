"""Dependency injection container for Network Scanner.

Provides a centralized way to create and wire the scan components,
making them easy to test and swap out.

Usage:
    from app.dependencies import create_dependencies

    deps = create_dependencies()
    deps.prober.scan()
    deps.reconciler.current_view()
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from config import STORAGE, ScanSettings, get_logger, get_settings_manager

logger = get_logger(__name__)


@dataclass
class ScanDependencies:
    """Container for all scan components.

    Using a dataclass makes dependencies explicit and easy to mock in tests.
    """

    # Discovery sources
    prober: "SubnetProber"
    listener: "ServiceDiscoveryListener"

    # Shared state
    reconciler: "Reconciler"
    vendor_resolver: "VendorResolver"
    event_bus: "EventBus"

    settings: ScanSettings

    def __post_init__(self):
        logger.debug("ScanDependencies container created")


def create_dependencies(
    data_dir: Optional[Path] = None,
    settings: Optional[ScanSettings] = None,
    event_bus: Optional["EventBus"] = None,
    backend: Optional["ServiceDiscoveryBackend"] = None,
) -> ScanDependencies:
    """Create and wire all scan components.

    Args:
        data_dir: Override the default data directory.
        settings: Use these settings instead of loading ``settings.json``.
        event_bus: Provide an existing event bus, or one will be created.
        backend: Service discovery backend; zeroconf when omitted.

    Returns:
        ScanDependencies container with all components.
    """
    # Import here to avoid circular imports
    from app.events import EventBus
    from discovery.host_probe import HostProbe
    from discovery.prober import SubnetProber
    from discovery.reconciler import Reconciler
    from discovery.service_listener import ServiceDiscoveryListener
    from discovery.vendor import VendorResolver, get_vendor_resolver

    logger.info("Creating scan dependencies...")

    if settings is None:
        if data_dir is None:
            data_dir = Path.home() / STORAGE.DATA_DIR_NAME
        settings = get_settings_manager(data_dir).settings

    if event_bus is None:
        event_bus = EventBus()

    if backend is None:
        from discovery.zeroconf_backend import ZeroconfBackend
        backend = ZeroconfBackend()

    if settings.oui_path:
        vendor_resolver = VendorResolver(extra_paths=[settings.oui_path])
    else:
        vendor_resolver = get_vendor_resolver()

    host_probe = HostProbe(
        timeout=settings.probe_timeout,
        ports=settings.probe_ports,
        method=settings.probe_method,
        hostname_timeout=settings.hostname_timeout,
    )
    prober = SubnetProber(
        host_probe=host_probe,
        max_workers=settings.probe_workers,
        read_arp=settings.read_arp_table,
    )
    listener = ServiceDiscoveryListener(
        backend=backend,
        event_bus=event_bus,
        service_types=settings.service_types,
        resolve_timeout=settings.resolve_timeout,
    )
    reconciler = Reconciler(event_bus=event_bus, vendor_resolver=vendor_resolver)

    deps = ScanDependencies(
        prober=prober,
        listener=listener,
        reconciler=reconciler,
        vendor_resolver=vendor_resolver,
        event_bus=event_bus,
        settings=settings,
    )

    logger.info("All dependencies created successfully")
    return deps
