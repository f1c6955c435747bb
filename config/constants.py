"""Centralized constants and configuration for Network Scanner.

This module holds the timeouts, catalogs and file names used by the
discovery core, so that none of them are scattered as magic numbers
through the prober, the listener or the coordinator.

Usage:
    from config.constants import INTERVALS, NETWORK, STORAGE

    # Access values
    timeout = INTERVALS.SERVICE_DISCOVERY_TIMEOUT_SECONDS
    catalog = NETWORK.SERVICE_TYPES
"""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Intervals:
    """Time intervals for various operations (in seconds).

    All interval values are in seconds unless otherwise specified.
    """
    # Service discovery stops on its own after this long
    SERVICE_DISCOVERY_TIMEOUT_SECONDS: float = 10.0

    # Per-host probing
    PROBE_TIMEOUT_SECONDS: float = 0.1      # Each connect attempt
    HOSTNAME_TIMEOUT_SECONDS: float = 1.0   # Reverse DNS, abandoned after this

    # Service resolution (SRV/A lookup for a found service)
    RESOLVE_TIMEOUT_SECONDS: float = 3.0

    # Subprocess timeouts
    SUBPROCESS_TIMEOUT_SECONDS: float = 5.0
    PING_TIMEOUT_SECONDS: float = 1.0

    # ARP table cache lifetime
    ARP_CACHE_TTL_SECONDS: float = 10.0


@dataclass(frozen=True)
class NetworkConfig:
    """Network-related configuration."""
    # Host addresses probed in the local /24
    FIRST_HOST: int = 1
    LAST_HOST: int = 254

    # Reachability probing
    PROBE_METHOD: str = "tcp"   # "tcp" or "icmp"
    PROBE_PORTS: Tuple[int, ...] = (7, 80, 443)  # echo first
    PROBE_WORKERS: int = 254
    RESOLVE_WORKERS: int = 8

    # Passive MAC enrichment from the kernel neighbour cache
    READ_ARP_TABLE: bool = True
    PROC_ARP_PATH: str = "/proc/net/arp"

    # Well-known DNS-SD service types browsed during a scan
    SERVICE_TYPES: Tuple[str, ...] = (
        "_http._tcp.local.",            # web
        "_https._tcp.local.",           # secure web
        "_ssh._tcp.local.",             # remote shell
        "_sftp-ssh._tcp.local.",        # file transfer
        "_ftp._tcp.local.",
        "_smb._tcp.local.",             # file sharing
        "_afpovertcp._tcp.local.",      # Apple file sharing
        "_airplay._tcp.local.",         # Apple cast
        "_raop._tcp.local.",            # Apple audio
        "_companion-link._tcp.local.",
        "_googlecast._tcp.local.",
        "_printer._tcp.local.",
        "_ipp._tcp.local.",
        "_ipps._tcp.local.",
        "_workstation._tcp.local.",
        "_device-info._tcp.local.",
        "_hap._tcp.local.",             # HomeKit
    )

    # Optional IEEE OUI tables shipped by arp-scan (tab separated)
    OUI_SYSTEM_PATHS: Tuple[str, ...] = (
        "/opt/homebrew/share/arp-scan/ieee-oui.txt",
        "/usr/local/share/arp-scan/ieee-oui.txt",
        "/usr/share/arp-scan/ieee-oui.txt",
    )


@dataclass(frozen=True)
class StorageConfig:
    """Storage and file-related configuration."""
    # Directory and file names
    DATA_DIR_NAME: str = ".network-scanner"
    SETTINGS_FILE: str = "settings.json"
    LOG_FILE: str = "network_scanner.log"
    OUI_FILE: str = "oui.csv"   # Bundled with the discovery package

    # Log rotation
    LOG_MAX_BYTES: int = 5_000_000  # 5MB
    LOG_BACKUP_COUNT: int = 3


# Global instances - import these
INTERVALS = Intervals()
NETWORK = NetworkConfig()
STORAGE = StorageConfig()


# Allowed commands for subprocess safety
ALLOWED_SUBPROCESS_COMMANDS = frozenset({
    'arp',
    'ping',
})
