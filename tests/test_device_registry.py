"""Tests for the device registry and device records."""

import threading

import pytest

from lan_discovery.core.data_models import (
    Device,
    DeviceIdentity,
    DiscoverySource,
    HostProbeResult,
    ProbeKind,
    RegistryEventKind,
)
from lan_discovery.utils.error_handler import RegistryError


class TestInsertOrIgnore:
    def test_insert_new_device(self, registry):
        device, inserted = registry.insert_or_ignore(Device.from_mdns("Printer1", "local", "_ipp._tcp"))
        assert inserted is True
        assert registry.devices == [device]

    def test_duplicate_identity_is_ignored(self, registry):
        first, _ = registry.insert_or_ignore(Device.from_mdns("Printer1", "local", "_ipp._tcp"))
        second, inserted = registry.insert_or_ignore(Device.from_mdns("Printer1", "local", "_ipp._tcp"))

        assert inserted is False
        assert second is first
        assert len(registry) == 1

    def test_identity_is_scoped_by_source(self, registry):
        registry.insert_or_ignore(Device.from_sweep(HostProbeResult("10.0.0.5", [80])))
        registry.insert_or_ignore(Device.from_ssdp("10.0.0.5"))

        assert len(registry) == 2
        assert len(registry.devices_from(DiscoverySource.SWEEP)) == 1
        assert len(registry.devices_from(DiscoverySource.SSDP)) == 1

    def test_insertion_order_is_kept(self, registry):
        names = ["c", "a", "b"]
        for name in names:
            registry.insert_or_ignore(Device.from_mdns(name, "local", "_http._tcp"))
        assert [device.identifier for device in registry.devices] == names

    def test_concurrent_inserts_stay_unique(self, registry):
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            for host in range(50):
                registry.insert_or_ignore(Device.from_sweep(HostProbeResult(f"10.0.0.{host}", icmp_reply=True)))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        identities = [device.identity for device in registry.devices]
        assert len(identities) == 50
        assert len(set(identities)) == 50

    def test_find_and_contains(self, registry):
        device, _ = registry.insert_or_ignore(Device.from_ssdp("uuid:1"))
        assert registry.find(DeviceIdentity.ssdp("uuid:1")) is device
        assert DeviceIdentity.ssdp("uuid:1") in registry
        assert DeviceIdentity.ssdp("uuid:2") not in registry


class TestObservers:
    def test_added_and_updated_events(self, registry):
        events = []
        registry.subscribe(events.append)

        device, _ = registry.insert_or_ignore(Device.from_mdns("Printer1", "local", "_ipp._tcp"))
        device.address = "10.0.0.20"
        device.port = 631

        assert [event.kind for event in events] == [
            RegistryEventKind.ADDED,
            RegistryEventKind.UPDATED,
            RegistryEventKind.UPDATED,
        ]
        assert (events[1].field, events[1].value) == ("address", "10.0.0.20")
        assert (events[2].field, events[2].value) == ("port", 631)
        assert events[0].device is device

    def test_duplicate_insert_publishes_nothing(self, registry):
        registry.insert_or_ignore(Device.from_ssdp("uuid:1"))
        events = []
        registry.subscribe(events.append)

        registry.insert_or_ignore(Device.from_ssdp("uuid:1"))
        assert events == []

    def test_unsubscribe(self, registry):
        events = []
        unsubscribe = registry.subscribe(events.append)
        unsubscribe()

        registry.insert_or_ignore(Device.from_ssdp("uuid:1"))
        assert events == []

    def test_failing_observer_does_not_break_insert(self, registry):
        def broken(event):
            raise ValueError("observer bug")

        events = []
        registry.subscribe(broken)
        registry.subscribe(events.append)

        _, inserted = registry.insert_or_ignore(Device.from_ssdp("uuid:1"))
        assert inserted is True
        assert len(events) == 1

    def test_clear_publishes_and_detaches(self, registry):
        device, _ = registry.insert_or_ignore(Device.from_mdns("Printer1", "local", "_ipp._tcp"))
        events = []
        registry.subscribe(events.append)

        registry.clear()
        device.address = "10.0.0.20"

        assert [event.kind for event in events] == [RegistryEventKind.CLEARED]
        assert device.address == "10.0.0.20"
        assert len(registry) == 0


class TestClear:
    def test_clear_while_scanning_raises(self, registry):
        registry.insert_or_ignore(Device.from_ssdp("uuid:1"))
        registry.mark_scanning(True)

        with pytest.raises(RegistryError):
            registry.clear()
        assert len(registry) == 1

    def test_clear_when_idle(self, registry):
        registry.insert_or_ignore(Device.from_ssdp("uuid:1"))
        registry.mark_scanning(True)
        registry.mark_scanning(False)

        registry.clear()
        assert registry.devices == []


class TestDevice:
    def test_identifier_prefers_friendly_name(self):
        device = Device.from_mdns("abc123", "local", "_googlecast._tcp")
        assert device.identifier == "abc123"
        device.friendly_name = "Living Room TV"
        assert device.identifier == "Living Room TV"

    def test_sweep_device_fields(self):
        device = Device.from_sweep(HostProbeResult("10.0.0.5", [80, 22], icmp_reply=True))
        assert device.address == "10.0.0.5"
        assert device.port == 80
        assert device.probe_methods == {ProbeKind.TCP, ProbeKind.ICMP}
        assert device.service_type == "sweep"

    def test_metadata_is_copied(self):
        device = Device.from_mdns("Printer1", "local", "_ipp._tcp")
        records = {"md": "LaserJet"}
        device.metadata = records
        records["md"] = "changed"

        snapshot = device.metadata
        snapshot["md"] = "also changed"
        assert device.metadata == {"md": "LaserJet"}

    def test_to_dict(self):
        device = Device.from_ssdp("uuid:1", server="Hue Bridge", host="10.0.0.8", port=80, headers={"st": "x"})
        data = device.to_dict()

        assert data["identifier"] == "Hue Bridge"
        assert data["source"] == "ssdp"
        assert data["identity"] == ["uuid:1"]
        assert (data["address"], data["port"]) == ("10.0.0.8", 80)
        assert data["metadata"] == {"st": "x"}
