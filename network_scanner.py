#!/usr/bin/env python3
"""
Network Scanner - LAN device discovery
Probes the local /24 and listens for DNS-SD announcements, then prints
one merged list of devices.
"""
import argparse
import ipaddress
import json
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from app.coordinator import ScanCoordinator
from app.dependencies import create_dependencies
from config import (
    STORAGE,
    ConfigurationError,
    ScanSettings,
    SettingsManager,
    get_logger,
    get_settings_manager,
    setup_logging,
)
from discovery.models import ScanState, UnifiedDevice

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="network-scanner",
        description="Discover devices on the local network.",
    )
    parser.add_argument(
        "--timeout", type=float, default=None, metavar="S",
        help="seconds to listen for service announcements (default from settings)",
    )
    parser.add_argument(
        "--subnet", default=None, metavar="A.B.C",
        help="first three octets to probe instead of the local subnet",
    )
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument(
        "--no-arp", action="store_true",
        help="do not read MAC addresses from the ARP cache",
    )
    parser.add_argument("--json", action="store_true", help="print devices as JSON")
    parser.add_argument(
        "--save-settings", action="store_true",
        help="store --timeout/--no-arp in the settings file for later runs",
    )
    return parser.parse_args(argv)


def valid_subnet_prefix(value: str) -> bool:
    """True for the first three octets of an IPv4 address, e.g. ``192.168.1``."""
    if value.count('.') != 2:
        return False
    try:
        ipaddress.IPv4Address(f"{value}.1")
    except ValueError:
        return False
    return True


def resolve_settings(manager: SettingsManager, args: argparse.Namespace) -> ScanSettings:
    """Stored settings with the command line overrides applied.

    Raises:
        ConfigurationError: An override is out of range.
    """
    overrides = {}
    if args.timeout is not None:
        overrides["service_timeout"] = args.timeout
    if args.no_arp:
        overrides["read_arp_table"] = False

    if args.save_settings:
        settings = manager.update(**overrides)
        logger.info(f"Settings saved to {manager.settings_file}")
        return settings
    return ScanSettings.from_dict({**manager.settings.to_dict(), **overrides})


def format_device_json(devices: List[UnifiedDevice]) -> str:
    return json.dumps([device.to_dict() for device in devices], indent=2)


def format_device_table(devices: List[UnifiedDevice]) -> str:
    """Render devices as a fixed-width table."""
    header = f"{'IP ADDRESS':<16} {'NAME':<32} {'MAC':<18} {'SOURCES':<14} SERVICES"
    lines = [header, "-" * len(header)]
    for device in devices:
        sources = ",".join(sorted(m.value for m in device.discovery_methods))
        services = ", ".join(f"{s.type}:{s.port}" for s in device.services)
        lines.append(
            f"{device.ip_address:<16} {device.display_name[:32]:<32} "
            f"{(device.mac_address or '-'):<18} {sources:<14} {services}"
        )
    lines.append(f"{len(devices)} device(s)")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the command line scanner."""
    args = parse_args(argv)

    data_dir = Path.home() / STORAGE.DATA_DIR_NAME
    setup_logging(data_dir=data_dir, debug=args.debug, console_output=True)
    logger.info("Network Scanner starting...")

    if args.subnet is not None and not valid_subnet_prefix(args.subnet):
        print(f"Invalid option: --subnet {args.subnet!r} is not of the form A.B.C", file=sys.stderr)
        return 2

    try:
        settings = resolve_settings(get_settings_manager(data_dir), args)
    except ConfigurationError as e:
        print(f"Invalid option: {e}", file=sys.stderr)
        return 2

    deps = create_dependencies(settings=settings)
    coordinator = ScanCoordinator.from_dependencies(deps)
    if args.subnet:
        coordinator.subnet_prefix = args.subnet

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, stopping scan...")
        # Off the main thread, which may hold the coordinator's control lock
        threading.Thread(target=coordinator.stop_scan, daemon=True).start()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        coordinator.start_scan()
        # Probe batch plus service timeout, with room for slow reverse lookups
        coordinator.wait_until_complete(timeout=settings.service_timeout + 60)
        state = coordinator.state
        devices = coordinator.devices
    except Exception as e:
        logger.critical(f"Scanner crashed: {e}", exc_info=True)
        raise
    finally:
        coordinator.shutdown()
        deps.event_bus.shutdown()

    if state is ScanState.ERROR:
        print("No network available: no IPv4 address and no service discovery.", file=sys.stderr)
        return 1

    print(format_device_json(devices) if args.json else format_device_table(devices))
    return 0


if __name__ == '__main__':
    sys.exit(main())
