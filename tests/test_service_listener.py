"""Tests for discovery/service_listener.py"""
from concurrent.futures import Executor, Future

import pytest

from app.events import EventType
from config.exceptions import SourceUnavailableError
from discovery.models import ServiceEventKind
from discovery.service_listener import (
    NotificationKind,
    ServiceDiscoveryListener,
    instance_name,
    normalize_service_type,
)
from tests.mocks import TEST_SERVICE_TYPES

SMB = "_smb._tcp.local."
HTTP = "_http._tcp.local."


class ManualExecutor(Executor):
    """Holds submitted work until ``run_all()``."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs) -> Future:
        future: Future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_all(self) -> None:
        pending, self.pending = self.pending, []
        for future, fn, args, kwargs in pending:
            future.set_result(fn(*args, **kwargs))


def service_events(recorded, event_type):
    return [e.data["event"] for e in recorded[event_type]]


class TestNameHelpers:
    """Tests for type and name normalisation."""

    @pytest.mark.parametrize("raw, expected", [
        ("_smb._tcp.local.", "_smb._tcp"),
        ("_smb._tcp.local", "_smb._tcp"),
        ("_smb._tcp", "_smb._tcp"),
    ])
    def test_normalize_service_type(self, raw, expected):
        assert normalize_service_type(raw) == expected

    def test_instance_name(self):
        assert instance_name("nas._smb._tcp.local.", SMB) == "nas"
        assert instance_name("Office Printer._ipp._tcp.local.", "_ipp._tcp.local.") == "Office Printer"

    def test_instance_name_without_suffix(self):
        assert instance_name("nas", SMB) == "nas"


class TestListenerLifecycle:
    """Tests for start/stop."""

    def test_start_registers_catalog(self, listener, fake_backend):
        assert listener.start() == len(TEST_SERVICE_TYPES)
        assert listener.is_active() is True
        assert sorted(t.service_type for t in fake_backend.tokens) == sorted(TEST_SERVICE_TYPES)

    def test_failed_registration_does_not_stop_others(self, listener, fake_backend):
        fake_backend.failing_types.add(SMB)
        assert listener.start() == len(TEST_SERVICE_TYPES) - 1
        assert SMB not in listener.active_service_types()

    def test_start_twice_is_noop(self, listener, fake_backend):
        listener.start()
        listener.start()
        assert len(fake_backend.tokens) == len(TEST_SERVICE_TYPES)

    def test_backend_unavailable_during_register(self, listener, fake_backend, monkeypatch):
        def _refuse(service_type, sink):
            raise SourceUnavailableError("socket closed")
        monkeypatch.setattr(fake_backend, "register", _refuse)

        assert listener.start() == 0
        assert listener.is_active() is False

    def test_stop_unregisters_everything(self, listener, fake_backend):
        listener.start()
        listener.stop()
        assert listener.is_active() is False
        assert sorted(fake_backend.unregistered) == sorted(TEST_SERVICE_TYPES)
        assert all(token.cancelled for token in fake_backend.tokens)

    def test_stop_is_idempotent(self, listener, fake_backend):
        listener.start()
        listener.stop()
        listener.stop()
        assert len(fake_backend.unregistered) == len(TEST_SERVICE_TYPES)

    def test_stop_without_start(self, listener, fake_backend):
        listener.stop()
        assert fake_backend.unregistered == []

    def test_stale_unregister_is_tolerated(self, listener, fake_backend):
        """A query the backend already tore down only warns."""
        fake_backend.stale_types.add(HTTP)
        listener.start()
        listener.stop()
        assert listener.is_active() is False

    def test_open_propagates_unavailable(self, listener, fake_backend):
        fake_backend.open_error = SourceUnavailableError("no multicast")
        with pytest.raises(SourceUnavailableError):
            listener.open()

    def test_close_stops_and_closes_backend(self, listener, fake_backend):
        listener.start()
        listener.close()
        assert listener.is_active() is False
        assert fake_backend.closed is True


class TestListenerEvents:
    """Tests for found/resolved/lost publishing."""

    def test_found_then_resolved(self, listener, fake_backend, recorded_events):
        fake_backend.add_service(SMB, "nas._smb._tcp.local.", "10.0.0.5", 445)
        listener.start()
        fake_backend.announce(SMB, "nas._smb._tcp.local.")

        found = service_events(recorded_events, EventType.SERVICE_FOUND)
        resolved = service_events(recorded_events, EventType.SERVICE_RESOLVED)
        assert [e.service_name for e in found] == ["nas"]
        assert found[0].kind is ServiceEventKind.FOUND
        assert found[0].ip is None

        assert len(resolved) == 1
        event = resolved[0]
        assert event.kind is ServiceEventKind.RESOLVED
        assert (event.service_name, event.service_type, event.ip, event.port) == (
            "nas", "_smb._tcp", "10.0.0.5", 445,
        )
        assert event.record.type == "_smb._tcp"

    def test_resolution_failure_is_dropped(self, listener, fake_backend, recorded_events):
        listener.start()
        fake_backend.announce(SMB, "ghost._smb._tcp.local.")

        assert len(recorded_events[EventType.SERVICE_FOUND]) == 1
        assert recorded_events[EventType.SERVICE_RESOLVED] == []
        assert fake_backend.resolve_calls == [(SMB, "ghost._smb._tcp.local.")]

    def test_lost_carries_resolved_ip(self, listener, fake_backend, recorded_events):
        fake_backend.add_service(SMB, "nas._smb._tcp.local.", "10.0.0.5", 445)
        listener.start()
        fake_backend.announce(SMB, "nas._smb._tcp.local.")
        fake_backend.withdraw(SMB, "nas._smb._tcp.local.")

        lost = service_events(recorded_events, EventType.SERVICE_LOST)
        assert len(lost) == 1
        assert lost[0].ip == "10.0.0.5"
        assert lost[0].kind is ServiceEventKind.LOST

    def test_lost_of_unresolved_service_is_dropped(self, listener, fake_backend, recorded_events):
        listener.start()
        fake_backend.announce(SMB, "ghost._smb._tcp.local.")
        fake_backend.withdraw(SMB, "ghost._smb._tcp.local.")
        assert recorded_events[EventType.SERVICE_LOST] == []

    def test_notifications_after_stop_are_dropped(self, listener, fake_backend, recorded_events):
        fake_backend.add_service(SMB, "nas._smb._tcp.local.", "10.0.0.5", 445)
        listener.start()
        listener.stop()
        fake_backend.announce(SMB, "nas._smb._tcp.local.")

        assert recorded_events[EventType.SERVICE_FOUND] == []
        assert recorded_events[EventType.SERVICE_RESOLVED] == []

    def test_late_resolution_after_stop_is_dropped(self, fake_backend, event_bus, recorded_events):
        executor = ManualExecutor()
        listener = ServiceDiscoveryListener(
            fake_backend, event_bus, service_types=[SMB], resolve_executor=executor
        )
        fake_backend.add_service(SMB, "nas._smb._tcp.local.", "10.0.0.5", 445)
        listener.start()
        fake_backend.announce(SMB, "nas._smb._tcp.local.")
        listener.stop()
        executor.run_all()

        assert recorded_events[EventType.SERVICE_RESOLVED] == []

    def test_resolution_from_previous_run_is_dropped(self, fake_backend, event_bus, recorded_events):
        executor = ManualExecutor()
        listener = ServiceDiscoveryListener(
            fake_backend, event_bus, service_types=[SMB], resolve_executor=executor
        )
        fake_backend.add_service(SMB, "nas._smb._tcp.local.", "10.0.0.5", 445)
        listener.start()
        fake_backend.announce(SMB, "nas._smb._tcp.local.")
        listener.stop()
        listener.start()
        executor.run_all()

        assert recorded_events[EventType.SERVICE_RESOLVED] == []

    def test_start_failed_drops_registration(self, listener, fake_backend):
        listener.start()
        fake_backend.notify(NotificationKind.START_FAILED, SMB, error_code=3)

        assert SMB not in listener.active_service_types()
        assert fake_backend.unregistered == [SMB]
        assert listener.is_active() is True

    def test_start_failed_during_register_is_not_kept(self, fake_backend, event_bus, inline_executor):
        """A failure reported before register() returns leaves nothing live."""
        fake_backend.rejecting_types.add(SMB)
        listener = ServiceDiscoveryListener(
            fake_backend, event_bus, service_types=[SMB], resolve_executor=inline_executor
        )

        assert listener.start() == 0
        assert listener.active_service_types() == []
        assert listener.is_active() is False
        assert fake_backend.unregistered == [SMB]

    def test_failed_type_registers_again_on_restart(self, listener, fake_backend):
        fake_backend.rejecting_types.add(SMB)
        listener.start()
        assert SMB not in listener.active_service_types()

        fake_backend.rejecting_types.clear()
        listener.stop()
        listener.start()
        assert SMB in listener.active_service_types()

    def test_stop_failed_is_a_warning(self, listener, fake_backend):
        listener.start()
        fake_backend.notify(NotificationKind.STOP_FAILED, SMB, error_code=0)
        assert SMB not in listener.active_service_types()

    def test_started_notification_is_harmless(self, listener, fake_backend, recorded_events):
        listener.start()
        fake_backend.notify(NotificationKind.STARTED, SMB)
        assert recorded_events[EventType.SERVICE_FOUND] == []
