"""MAC address vendor lookup.

The table is read once, on first lookup, from the CSV bundled with this
package (``OUI,Vendor`` rows such as ``00:03:93,Apple, Inc.``) and from
any arp-scan ``ieee-oui.txt`` found on the system. After loading it is
never written again, so lookups need no lock.
"""
import re
import threading
from pathlib import Path
from typing import Dict, Iterable, Optional

from config import NETWORK, STORAGE, get_logger

logger = get_logger(__name__)

BUNDLED_OUI_PATH = Path(__file__).parent / "data" / STORAGE.OUI_FILE

_HEX_ONLY = re.compile(r'^[0-9A-F]+$')


def normalize_mac(mac_address: str) -> str:
    """Normalize MAC address to XX:XX:XX:XX:XX:XX format."""
    mac_clean = mac_address.strip().upper().replace("-", ":").replace(".", ":")
    parts = mac_clean.split(":")
    if len(parts) == 6:
        return ":".join(p.zfill(2) for p in parts)
    if len(parts) == 1 and len(mac_clean) == 12 and _HEX_ONLY.match(mac_clean):
        return ":".join(mac_clean[i:i + 2] for i in range(0, 12, 2))
    return mac_address.strip().upper()


def oui_key(mac_address: str) -> Optional[str]:
    """First three octets as ``XX:XX:XX``, or None if there aren't three.

    Accepts ``-``, ``.`` and ``:`` separators, bare hex and either case.
    """
    cleaned = mac_address.strip().upper()
    for sep in ("-", "."):
        cleaned = cleaned.replace(sep, ":")

    if ":" in cleaned:
        parts = [p for p in cleaned.split(":") if p]
        # Cisco dotted form (aabb.ccdd.eeff) has three 4-digit groups
        if len(parts) == 3 and all(len(p) == 4 for p in parts):
            cleaned = "".join(parts)
        else:
            if len(parts) < 3 or not all(_HEX_ONLY.match(p) and len(p) <= 2 for p in parts[:3]):
                return None
            return ":".join(p.zfill(2) for p in parts[:3])

    if len(cleaned) < 6 or not _HEX_ONLY.match(cleaned[:6]):
        return None
    return f"{cleaned[0:2]}:{cleaned[2:4]}:{cleaned[4:6]}"


class VendorResolver:
    """OUI database for MAC vendor lookup.

    Example:
        >>> resolver = VendorResolver()
        >>> resolver.lookup("b8-27-eb-11-22-33")
        'Raspberry Pi Foundation'
    """

    def __init__(
        self,
        bundled_path: Optional[Path] = None,
        extra_paths: Optional[Iterable[str]] = None,
    ):
        self._bundled_path = bundled_path or BUNDLED_OUI_PATH
        self._extra_paths = tuple(NETWORK.OUI_SYSTEM_PATHS if extra_paths is None else extra_paths)
        self._vendors: Dict[str, str] = {}
        self._loaded = False
        self._load_lock = threading.Lock()

    def _load(self) -> None:
        # Fast path - already loaded
        if self._loaded:
            return

        with self._load_lock:
            if self._loaded:
                return

            vendors: Dict[str, str] = {}
            self._load_csv(self._bundled_path, vendors)
            for path in self._extra_paths:
                self._load_ieee_table(Path(path), vendors)

            self._vendors = vendors
            self._loaded = True
            logger.info(f"Loaded {len(vendors)} OUI entries")

    @staticmethod
    def _load_csv(path: Path, vendors: Dict[str, str]) -> None:
        """Read ``OUI,Vendor`` rows. Vendor names may themselves contain commas."""
        try:
            with open(path, 'r', encoding='utf-8', errors='ignore') as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith('#'):
                        continue
                    parts = line.split(',', 1)
                    if len(parts) != 2:
                        continue
                    key = oui_key(parts[0])
                    if key:
                        vendors[key] = parts[1].strip()
        except OSError as e:
            logger.error(f"Failed to load bundled OUI table {path}: {e}")

    @staticmethod
    def _load_ieee_table(path: Path, vendors: Dict[str, str]) -> None:
        """Read arp-scan's tab separated table; bundled entries win."""
        if not path.exists():
            return
        try:
            with open(path, 'r', encoding='utf-8', errors='ignore') as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith('#'):
                        continue
                    parts = line.split('\t', 1)
                    if len(parts) != 2 or len(parts[0]) != 6:
                        continue
                    key = oui_key(parts[0])
                    if key and key not in vendors:
                        vendors[key] = parts[1].strip()
            logger.debug(f"Merged OUI entries from {path}")
        except OSError as e:
            logger.debug(f"Failed to load OUI from {path}: {e}")

    def lookup(self, mac_address: Optional[str]) -> Optional[str]:
        """Look up vendor from MAC address."""
        if not mac_address:
            return None
        key = oui_key(mac_address)
        if key is None:
            logger.debug(f"Invalid MAC address: {mac_address}")
            return None
        self._load()
        return self._vendors.get(key)

    def __len__(self) -> int:
        self._load()
        return len(self._vendors)


# Global resolver instance
_default_resolver: Optional[VendorResolver] = None
_default_resolver_lock = threading.Lock()


def get_vendor_resolver() -> VendorResolver:
    """Get or create the process-wide resolver (table loads on first lookup)."""
    global _default_resolver
    with _default_resolver_lock:
        if _default_resolver is None:
            _default_resolver = VendorResolver()
        return _default_resolver
