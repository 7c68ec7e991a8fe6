"""Tests for address helpers and local network detection."""

import socket
from unittest.mock import MagicMock, patch

import pytest

from lan_discovery.core.network_detector import NetworkDetector
from lan_discovery.utils.error_handler import ConfigurationError
from lan_discovery.utils.network_utils import (
    address_from_bytes,
    candidate_addresses,
    host_port_from_url,
    is_valid_ip,
    local_prefix,
)


class TestNetworkUtils:
    @pytest.mark.parametrize("address,valid", [
        ("192.168.1.14", True),
        ("10.0.0.256", False),
        ("fe80::1", False),
        ("printer.local", False),
    ])
    def test_is_valid_ip(self, address, valid):
        assert is_valid_ip(address) is valid

    def test_local_prefix(self):
        assert local_prefix("192.168.1.14") == "192.168.1."
        assert local_prefix("not an address") is None
        assert local_prefix(None) is None

    def test_candidate_addresses(self):
        candidates = candidate_addresses("10.0.0.", ["10.0.0.9"])
        assert len(candidates) == 253
        assert candidates[0] == "10.0.0.1"
        assert candidates[-1] == "10.0.0.254"
        assert "10.0.0.9" not in candidates

    def test_address_from_bytes(self):
        assert address_from_bytes(socket.inet_aton("10.0.0.20")) == "10.0.0.20"
        assert address_from_bytes(socket.inet_pton(socket.AF_INET6, "fe80::1")) == "fe80::1"
        assert address_from_bytes(b"\x01\x02") is None

    @pytest.mark.parametrize("url,expected", [
        ("http://192.168.1.20:49152/description.xml", ("192.168.1.20", 49152)),
        ("http://192.168.1.20/description.xml", ("192.168.1.20", 80)),
        ("https://hub.local/setup", ("hub.local", 443)),
        ("http://[fe80::1]:8080/", ("fe80::1", 8080)),
        ("/description.xml", (None, None)),
        ("http://10.0.0.1:99999/", (None, None)),
    ])
    def test_host_port_from_url(self, url, expected):
        assert host_port_from_url(url) == expected


class TestNetworkDetector:
    def _socket_factory(self, local_ip):
        sock = MagicMock()
        sock.__enter__.return_value = sock
        sock.getsockname.return_value = (local_ip, 54321)
        return MagicMock(return_value=sock)

    def test_detects_prefix_and_excludes_own_address(self, quiet_logger):
        detector = NetworkDetector(logger=quiet_logger, socket_factory=self._socket_factory("10.0.0.9"))
        info = detector.get_network_info()

        assert info.host_ip == "10.0.0.9"
        assert info.prefix == "10.0.0."
        assert info.excluded_addresses == ["10.0.0.9"]

    def test_skip_gateway(self, quiet_logger):
        detector = NetworkDetector("10.0.0.9", quiet_logger)
        info = detector.get_network_info(skip_gateway=True)
        assert info.excluded_addresses == ["10.0.0.9", "10.0.0.1"]

    def test_configured_address_overrides_detection(self, quiet_logger):
        factory = MagicMock()
        info = NetworkDetector("192.168.1.14", quiet_logger, factory).get_network_info()

        assert info.prefix == "192.168.1."
        factory.assert_not_called()

    @patch("lan_discovery.core.network_detector.socket.gethostbyname", return_value="192.168.1.50")
    def test_falls_back_to_hostname(self, _, quiet_logger):
        factory = MagicMock(side_effect=OSError("network unreachable"))
        info = NetworkDetector(logger=quiet_logger, socket_factory=factory).get_network_info()
        assert info.host_ip == "192.168.1.50"

    @patch("lan_discovery.core.network_detector.socket.gethostbyname", return_value="127.0.1.1")
    def test_loopback_only_is_a_configuration_error(self, _, quiet_logger):
        factory = MagicMock(side_effect=OSError("network unreachable"))
        with pytest.raises(ConfigurationError):
            NetworkDetector(logger=quiet_logger, socket_factory=factory).get_network_info()

    def test_malformed_configured_address(self, quiet_logger):
        with pytest.raises(ConfigurationError):
            NetworkDetector("10.0.0", quiet_logger).get_network_info()
