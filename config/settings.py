"""User settings for Network Scanner.

Settings live in ``~/.network-scanner/settings.json`` and override the
defaults from ``config.constants``. Only knobs are stored here; scan
results are never written to disk.
"""
import json
import threading
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.constants import INTERVALS, NETWORK, STORAGE
from config.exceptions import ConfigurationError
from config.logging_config import get_logger

logger = get_logger(__name__)

PROBE_METHODS = ("tcp", "icmp")


@dataclass
class ScanSettings:
    """Tunable scan parameters."""
    service_timeout: float = INTERVALS.SERVICE_DISCOVERY_TIMEOUT_SECONDS
    probe_timeout: float = INTERVALS.PROBE_TIMEOUT_SECONDS
    hostname_timeout: float = INTERVALS.HOSTNAME_TIMEOUT_SECONDS
    resolve_timeout: float = INTERVALS.RESOLVE_TIMEOUT_SECONDS
    probe_method: str = NETWORK.PROBE_METHOD
    probe_ports: List[int] = field(default_factory=lambda: list(NETWORK.PROBE_PORTS))
    probe_workers: int = NETWORK.PROBE_WORKERS
    read_arp_table: bool = NETWORK.READ_ARP_TABLE
    service_types: List[str] = field(default_factory=lambda: list(NETWORK.SERVICE_TYPES))
    oui_path: Optional[str] = None

    def validate(self) -> None:
        """Raise ConfigurationError for values the scanner cannot work with."""
        for name in ("service_timeout", "probe_timeout", "hostname_timeout", "resolve_timeout"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(f"Invalid {name}", {"value": value})
        if self.probe_method not in PROBE_METHODS:
            raise ConfigurationError("Invalid probe_method", {"value": self.probe_method})
        if self.probe_method == "tcp" and not self.probe_ports:
            raise ConfigurationError("probe_ports must not be empty for tcp probing")
        if any(not isinstance(p, int) or not 0 < p < 65536 for p in self.probe_ports):
            raise ConfigurationError("Invalid probe_ports", {"value": self.probe_ports})
        if not isinstance(self.probe_workers, int) or self.probe_workers < 1:
            raise ConfigurationError("Invalid probe_workers", {"value": self.probe_workers})
        if not self.service_types:
            raise ConfigurationError("service_types must not be empty")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScanSettings':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings: {sorted(unknown)}")
        settings = cls(**{k: v for k, v in data.items() if k in known})
        settings.validate()
        return settings


class SettingsManager:
    """Loads and saves ScanSettings as JSON."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.settings_file = data_dir / STORAGE.SETTINGS_FILE
        self._lock = threading.Lock()
        self._settings = ScanSettings()
        self._load()

    def _load(self) -> None:
        if not self.settings_file.exists():
            return
        try:
            with open(self.settings_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not load settings from {self.settings_file}: {e}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Settings file {self.settings_file} is not a JSON object")
            return
        try:
            self._settings = ScanSettings.from_dict(data)
        except (ConfigurationError, TypeError) as e:
            logger.warning(f"Invalid settings, using defaults: {e}")
            self._settings = ScanSettings()

    def save(self) -> None:
        with self._lock:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(self.settings_file, 'w', encoding='utf-8') as f:
                json.dump(self._settings.to_dict(), f, indent=2)

    @property
    def settings(self) -> ScanSettings:
        return self._settings

    def update(self, **changes: Any) -> ScanSettings:
        """Apply and validate changes, then persist them."""
        with self._lock:
            data = self._settings.to_dict()
            data.update(changes)
            self._settings = ScanSettings.from_dict(data)
        self.save()
        return self._settings


def get_settings_manager(data_dir: Optional[Path] = None) -> SettingsManager:
    """Create a settings manager for ``data_dir`` (default ~/.network-scanner)."""
    if data_dir is None:
        data_dir = Path.home() / STORAGE.DATA_DIR_NAME
    return SettingsManager(data_dir)
