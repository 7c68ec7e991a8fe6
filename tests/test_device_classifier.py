"""Tests for display classification of devices."""

import pytest

from lan_discovery.core.data_models import Device, DeviceCategory, HostProbeResult
from lan_discovery.core.device_classifier import ClassificationRule, DeviceClassifier


@pytest.fixture
def classifier():
    return DeviceClassifier()


class TestDeviceClassifier:
    @pytest.mark.parametrize("name,service_type,expected", [
        ("EPSON XP-6100", "_http._tcp", DeviceCategory.PRINTER),
        ("RSLED-Kitchen", "_http._tcp", DeviceCategory.LIGHTING),
        ("Dell Latitude", "_http._tcp", DeviceCategory.COMPUTER),
        ("Office", "_ipp._tcp", DeviceCategory.PRINTER),
        ("Office", "_smb._tcp", DeviceCategory.COMPUTER),
        ("Base Station", "_airport._tcp", DeviceCategory.NETWORK),
        ("Speaker", "_googlecast._tcp", DeviceCategory.MEDIA),
        ("Thermostat", "_hap._tcp", DeviceCategory.IOT),
        ("Something", "_http._tcp", DeviceCategory.UNKNOWN),
    ])
    def test_mdns_devices(self, classifier, name, service_type, expected):
        assert classifier.classify(Device.from_mdns(name, "local", service_type)) is expected

    def test_name_outranks_service_type(self, classifier):
        device = Device.from_mdns("Studio Printer", "local", "_smb._tcp")
        assert classifier.classify(device) is DeviceCategory.PRINTER

    def test_friendly_name_is_used(self, classifier):
        device = Device.from_mdns("abc123", "local", "_http._tcp")
        device.friendly_name = "Epson ET-2720"
        assert classifier.classify(device) is DeviceCategory.PRINTER

    @pytest.mark.parametrize("ports,expected", [
        ([9100], DeviceCategory.PRINTER),
        ([80, 22], DeviceCategory.COMPUTER),
        ([1883], DeviceCategory.IOT),
        ([80], DeviceCategory.UNKNOWN),
    ])
    def test_sweep_devices_by_port(self, classifier, ports, expected):
        device = Device.from_sweep(HostProbeResult("10.0.0.5", ports))
        assert classifier.classify(device) is expected

    def test_ssdp_device_without_keywords(self, classifier):
        device = Device.from_ssdp("uuid:1", server="Linux UPnP/1.0")
        assert classifier.classify(device) is DeviceCategory.UNKNOWN

    def test_custom_rules_by_priority(self):
        rules = [
            ClassificationRule("low", DeviceCategory.MEDIA, 1, identifier_keywords=["tv"]),
            ClassificationRule("high", DeviceCategory.COMPUTER, 5, identifier_keywords=["tv"]),
        ]
        device = Device.from_mdns("Living Room TV", "local", "_http._tcp")
        assert DeviceClassifier(rules).classify(device) is DeviceCategory.COMPUTER
