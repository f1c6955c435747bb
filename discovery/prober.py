"""Subnet prober - fans HostProbe out over the local /24.

The batch is all-or-nothing: ``scan()`` returns only once every probe
has finished (each one is bounded by its own timeouts), and returns the
reachable hosts in one list. It never streams partial results.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from config import NETWORK, LogContext, ProbeError, SourceUnavailableError, get_logger
from discovery.host_probe import HostProbe, derive_subnet_prefix, get_local_ipv4, read_arp_table
from discovery.models import ProbeResult

logger = get_logger(__name__)


class SubnetProber:
    """Probes ``prefix.1`` … ``prefix.254`` concurrently.

    Attributes:
        host_probe: Probe used for each address.
        max_workers: Size of the probe pool; 254 runs every probe at once.
        read_arp: Attach MAC addresses from the ARP cache after the batch.
    """

    def __init__(
        self,
        host_probe: Optional[HostProbe] = None,
        max_workers: int = NETWORK.PROBE_WORKERS,
        read_arp: bool = NETWORK.READ_ARP_TABLE,
        local_address: Callable[[], Optional[str]] = get_local_ipv4,
        arp_reader: Callable[[], Dict[str, str]] = read_arp_table,
    ):
        self.host_probe = host_probe or HostProbe()
        self.max_workers = max_workers
        self.read_arp = read_arp
        self._local_address = local_address
        self._arp_reader = arp_reader

    def local_subnet_prefix(self) -> str:
        """Derive the /24 prefix from this machine's address.

        Raises:
            SourceUnavailableError: No IPv4 address is assigned.
        """
        ip = self._local_address()
        if not ip:
            raise SourceUnavailableError("No local IPv4 address")
        return derive_subnet_prefix(ip)

    @staticmethod
    def host_addresses(prefix: str) -> List[str]:
        return [f"{prefix}.{i}" for i in range(NETWORK.FIRST_HOST, NETWORK.LAST_HOST + 1)]

    def scan(self, subnet_prefix: Optional[str] = None) -> List[ProbeResult]:
        """Probe every host address and return the reachable ones.

        Args:
            subnet_prefix: First three octets to scan. Derived from the
                local address when omitted.

        Returns:
            Reachable hosts; an empty list when there is no local address.
        """
        if subnet_prefix is None:
            try:
                subnet_prefix = self.local_subnet_prefix()
            except SourceUnavailableError as e:
                logger.warning(f"Skipping subnet probe: {e}")
                return []

        addresses = self.host_addresses(subnet_prefix)
        with LogContext(logger, f"Probe of {subnet_prefix}.0/24"):
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="probe"
            ) as pool:
                results = list(pool.map(self._probe_one, addresses))

        found = [r for r in results if r.reachable]
        if found and self.read_arp:
            found = self._attach_macs(found)

        logger.info(f"Subnet probe found {len(found)} of {len(addresses)} hosts")
        return found

    def _probe_one(self, ip: str) -> ProbeResult:
        try:
            return self.host_probe.probe(ip)
        except ProbeError as e:
            logger.debug(f"Probe of {ip} failed: {e}")
        except Exception as e:
            # treated as unreachable
            logger.debug(f"Unexpected probe error for {ip}: {e}", exc_info=True)
        return ProbeResult(ip=ip, reachable=False)

    def _attach_macs(self, results: List[ProbeResult]) -> List[ProbeResult]:
        try:
            arp = self._arp_reader()
        except Exception as e:
            logger.warning(f"ARP enrichment failed: {e}")
            return results
        return [
            ProbeResult(r.ip, r.hostname, r.reachable, arp.get(r.ip, r.mac_address))
            for r in results
        ]
