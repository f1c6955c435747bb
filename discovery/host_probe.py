"""Single-host probing and the OS primitives the prober relies on.

HostProbe answers two questions about one address: is it alive, and
does it have a reverse-DNS name. Liveness uses short TCP connects
(an accepted connection or an active refusal both prove a host is
there), or one ICMP echo through ``ping`` when configured.

Also here: the own-address query (psutil) and a passive read of the
kernel's ARP cache for MAC addresses.
"""
import errno
import ipaddress
import re
import socket
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import psutil

from config import INTERVALS, NETWORK, ProbeError, SubprocessError, get_logger, safe_run
from discovery.models import ProbeResult
from discovery.vendor import normalize_mac

logger = get_logger(__name__)

# errno values that mean "something answered" or "nothing there"
_ALIVE_ERRNOS = {errno.ECONNREFUSED, errno.ECONNRESET}

# ? (192.168.1.1) at 00:11:22:33:44:55 on en0 ...
_ARP_LINE = re.compile(r'\((\d+\.\d+\.\d+\.\d+)\)\s+at\s+([0-9a-fA-F:]+)')


# ============================================================================
# Own address
# ============================================================================

def get_local_ipv4() -> Optional[str]:
    """Return this machine's IPv4 address on an interface that is up.

    Loopback and link-local (169.254/16) addresses are skipped. Returns
    None when no usable address is assigned.
    """
    try:
        addrs = psutil.net_if_addrs()
        stats = psutil.net_if_stats()
    except OSError as e:
        logger.warning(f"Could not list network interfaces: {e}")
        return None

    for iface, iface_addrs in addrs.items():
        iface_stats = stats.get(iface)
        if iface_stats is not None and not iface_stats.isup:
            continue
        for addr in iface_addrs:
            if addr.family != socket.AF_INET:
                continue
            try:
                ip = ipaddress.IPv4Address(addr.address)
            except ValueError:
                continue
            if ip.is_loopback or ip.is_link_local or ip.is_unspecified:
                continue
            logger.debug(f"Local IPv4 address {ip} on {iface}")
            return str(ip)
    return None


def derive_subnet_prefix(ip_address: str) -> str:
    """First three octets of a dotted-quad: ``192.168.1.37`` -> ``192.168.1``."""
    return str(ipaddress.IPv4Address(ip_address)).rsplit('.', 1)[0]


# ============================================================================
# ARP cache
# ============================================================================

def read_arp_table(proc_path: str = NETWORK.PROC_ARP_PATH) -> Dict[str, str]:
    """Map IP -> MAC from the kernel neighbour cache.

    Reads ``/proc/net/arp`` on Linux, otherwise parses ``arp -an``.
    Incomplete and broadcast entries are skipped. Never raises.
    """
    entries: Dict[str, str] = {}
    path = Path(proc_path)

    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                next(f, None)  # Header line
                for line in f:
                    fields = line.split()
                    if len(fields) >= 4:
                        _add_arp_entry(entries, fields[0], fields[3])
            return entries
        except OSError as e:
            logger.debug(f"Could not read {proc_path}: {e}")

    try:
        result = safe_run(['arp', '-an'], ttl=INTERVALS.ARP_CACHE_TTL_SECONDS)
    except SubprocessError as e:
        logger.debug(f"ARP table unavailable: {e}")
        return entries

    if result.returncode == 0:
        for line in result.stdout.splitlines():
            match = _ARP_LINE.search(line)
            if match:
                _add_arp_entry(entries, match.group(1), match.group(2))
    return entries


def _add_arp_entry(entries: Dict[str, str], ip: str, mac: str) -> None:
    mac = normalize_mac(mac)
    if mac in ("00:00:00:00:00:00", "FF:FF:FF:FF:FF:FF") or mac.count(":") != 5:
        return
    entries[ip] = mac


# ============================================================================
# Host probe
# ============================================================================

class HostProbe:
    """Reachability and reverse-DNS check for one IP address.

    Stateless, so one instance can serve every worker of a subnet scan.
    """

    def __init__(
        self,
        timeout: float = INTERVALS.PROBE_TIMEOUT_SECONDS,
        ports: Sequence[int] = NETWORK.PROBE_PORTS,
        method: str = NETWORK.PROBE_METHOD,
        hostname_timeout: float = INTERVALS.HOSTNAME_TIMEOUT_SECONDS,
    ):
        self.timeout = timeout
        self.ports = tuple(ports)
        self.method = method
        self.hostname_timeout = hostname_timeout

    def probe(self, ip: str) -> ProbeResult:
        """Probe one address. Unreachable hosts get no hostname lookup.

        Raises:
            ProbeError: ``ip`` is not a dotted-quad IPv4 address.
        """
        try:
            ipaddress.IPv4Address(ip)
        except ValueError as e:
            raise ProbeError("Not an IPv4 address", {"ip": ip}) from e

        if not self.is_reachable(ip, self.timeout):
            return ProbeResult(ip=ip, reachable=False)
        hostname = self.resolve_hostname(ip)
        logger.debug(f"Found device: {ip} (hostname={hostname})")
        return ProbeResult(ip=ip, hostname=hostname, reachable=True)

    def is_reachable(self, ip: str, timeout: float) -> bool:
        if self.method == "icmp":
            return self._ping(ip)
        return any(self._tcp_knock(ip, port, timeout) for port in self.ports)

    @staticmethod
    def _tcp_knock(ip: str, port: int, timeout: float) -> bool:
        try:
            with socket.create_connection((ip, port), timeout=timeout):
                return True
        except ConnectionRefusedError:
            return True  # RST from a live host
        except socket.timeout:
            return False
        except OSError as e:
            return e.errno in _ALIVE_ERRNOS

    def _ping(self, ip: str) -> bool:
        if sys.platform == "darwin":
            wait = str(int(INTERVALS.PING_TIMEOUT_SECONDS * 1000))  # milliseconds
        else:
            wait = str(max(1, int(INTERVALS.PING_TIMEOUT_SECONDS)))
        try:
            result = safe_run(
                ['ping', '-c', '1', '-W', wait, ip],
                timeout=INTERVALS.PING_TIMEOUT_SECONDS + 1,
            )
        except SubprocessError as e:
            logger.debug(f"Ping {ip} failed: {e}")
            return False
        return result.returncode == 0

    def resolve_hostname(self, ip: str) -> Optional[str]:
        """Reverse-DNS name for ``ip``; None when absent, slow, or just the IP.

        Each lookup runs on its own daemon thread, so the timeout starts
        when this lookup starts. An overrunning lookup is abandoned.
        """
        answer: List[Optional[str]] = [None]
        done = threading.Event()

        def _lookup() -> None:
            try:
                answer[0] = socket.gethostbyaddr(ip)[0]
            except (OSError, UnicodeError) as e:
                logger.debug(f"No reverse name for {ip}: {e}")
            finally:
                done.set()

        threading.Thread(target=_lookup, daemon=True, name=f"rdns-{ip}").start()
        if not done.wait(self.hostname_timeout):
            logger.debug(f"Reverse lookup for {ip} timed out")
            return None

        hostname = answer[0]
        if not hostname or hostname == ip:
            return None
        return hostname
