"""Pytest configuration and shared fixtures.

This module provides:
- Common test fixtures for data directories and sample data
- Fake discovery sources wired to a synchronous event bus
- Pytest markers for test categorization (unit, integration, slow)
"""
import tempfile
from pathlib import Path
from typing import Generator, List
from unittest.mock import MagicMock

import pytest

from app.events import Event, EventBus, EventType
from discovery.models import ProbeResult
from discovery.reconciler import Reconciler
from discovery.service_listener import ServiceDiscoveryListener
from discovery.vendor import VendorResolver
from tests.mocks import TEST_SERVICE_TYPES, FakeDiscoveryBackend, FakeProber, InlineExecutor

# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: mark test as a unit test (fast, isolated)")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# =============================================================================
# Directory and Path Fixtures
# =============================================================================


@pytest.fixture
def temp_data_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test data."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_settings_path(temp_data_dir: Path) -> Path:
    """Create a path for temporary settings."""
    return temp_data_dir / "settings.json"


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def sample_probe_batch() -> List[ProbeResult]:
    """Three live hosts in insertion order .20, .5, .3."""
    return [
        ProbeResult(ip="10.0.0.20", hostname="printer.lan", reachable=True),
        ProbeResult(ip="10.0.0.5", hostname=None, reachable=True),
        ProbeResult(ip="10.0.0.3", hostname="router.lan", reachable=True,
                    mac_address="B8:27:EB:11:22:33"),
    ]


@pytest.fixture
def sample_oui_csv(temp_data_dir: Path) -> Path:
    """Small OUI table in the bundled CSV format."""
    path = temp_data_dir / "oui.csv"
    path.write_text(
        "00:03:93,Apple, Inc.\n"
        "B8-27-EB,Raspberry Pi Foundation\n"
        "# comment line\n"
        "not a row\n"
        "00:1d:0f,TP-LINK TECHNOLOGIES CO.,LTD.\n",
        encoding="utf-8",
    )
    return path


# =============================================================================
# Event Bus Fixtures
# =============================================================================


@pytest.fixture
def event_bus() -> EventBus:
    """Synchronous event bus so handlers run before publish() returns."""
    return EventBus(async_mode=False)


@pytest.fixture
def mock_event_bus() -> MagicMock:
    """Create a mock event bus for testing event-driven components."""
    mock_bus = MagicMock()
    mock_bus.publish = MagicMock()
    mock_bus.subscribe = MagicMock()
    mock_bus.unsubscribe = MagicMock()
    return mock_bus


@pytest.fixture
def recorded_events(event_bus: EventBus):
    """Collect every event published on ``event_bus``, keyed by type."""
    recorded = {event_type: [] for event_type in EventType}

    def _make_handler(event_type):
        def _handler(event: Event) -> None:
            recorded[event_type].append(event)
        return _handler

    for event_type in EventType:
        event_bus.subscribe(event_type, _make_handler(event_type))
    return recorded


# =============================================================================
# Discovery Fixtures
# =============================================================================


@pytest.fixture
def vendor_resolver(sample_oui_csv: Path) -> VendorResolver:
    return VendorResolver(bundled_path=sample_oui_csv, extra_paths=[])


@pytest.fixture
def reconciler(event_bus: EventBus, vendor_resolver: VendorResolver) -> Reconciler:
    return Reconciler(event_bus=event_bus, vendor_resolver=vendor_resolver)


@pytest.fixture
def fake_backend() -> FakeDiscoveryBackend:
    return FakeDiscoveryBackend()


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def listener(fake_backend, event_bus, inline_executor) -> ServiceDiscoveryListener:
    return ServiceDiscoveryListener(
        backend=fake_backend,
        event_bus=event_bus,
        service_types=TEST_SERVICE_TYPES,
        resolve_timeout=0.5,
        resolve_executor=inline_executor,
    )


@pytest.fixture
def fake_prober() -> FakeProber:
    return FakeProber()
