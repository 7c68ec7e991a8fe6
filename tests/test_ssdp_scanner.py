"""Tests for SSDP reply parsing and the SSDP discovery source."""

import socket
import threading
from collections import deque
from unittest.mock import MagicMock

from conftest import wait_until

from lan_discovery.config.config_loader import SSDPConfig
from lan_discovery.core.data_models import DeviceIdentity, NetworkInfo, SourceStatus
from lan_discovery.scanners.ssdp_scanner import (
    DEFAULT_SERVER_NAME,
    SSDPScanner,
    build_search_request,
    parse_headers,
    parse_ssdp_response,
)

HUE_REPLY = (
    "HTTP/1.1 200 OK\r\n"
    "CACHE-CONTROL: max-age=100\r\n"
    "LOCATION: http://192.168.1.20:49152/description.xml\r\n"
    "SERVER: Linux/3.14.0 UPnP/1.0 IpBridge/1.26.0\r\n"
    "ST: upnp:rootdevice\r\n"
    "USN: uuid:2f402f80-da50-11e1-9b23-001788255acc::upnp:rootdevice\r\n"
    "\r\n"
)


class FakeSocket:
    """Datagram socket double: replies are queued, recvfrom times out when idle."""

    def __init__(self, replies=None, fail_on=None):
        self.replies = deque(replies or [])
        self.fail_on = fail_on
        self.sent = []
        self.options = []
        self.close_count = 0
        self._closed = threading.Event()

    def setsockopt(self, level, option, value):
        self.options.append((level, option, value))

    def bind(self, address):
        if self.fail_on == "bind":
            raise OSError(98, "Address already in use")

    def settimeout(self, timeout):
        self.timeout = timeout

    def sendto(self, data, address):
        if self.fail_on == "sendto":
            raise OSError(101, "Network is unreachable")
        self.sent.append((data, address))

    def recvfrom(self, size):
        if self._closed.is_set():
            raise OSError(9, "Bad file descriptor")
        if self.replies:
            return self.replies.popleft(), ("192.168.1.20", 1900)
        self._closed.wait(0.01)
        raise socket.timeout()

    def close(self):
        self.close_count += 1
        self._closed.set()


class TestParsing:
    def test_headers_are_case_insensitive_and_split_once(self):
        headers = parse_headers(HUE_REPLY)
        assert headers["location"] == "http://192.168.1.20:49152/description.xml"
        assert headers["cache-control"] == "max-age=100"
        assert "http/1.1 200 ok" not in headers

    def test_reply_without_location_is_discarded(self):
        reply = "HTTP/1.1 200 OK\r\nUSN: uuid:abc\r\nSERVER: test\r\n\r\n"
        assert parse_ssdp_response(reply) is None

    def test_location_host_and_port(self):
        reply = parse_ssdp_response(HUE_REPLY)
        assert reply.host == "192.168.1.20"
        assert reply.port == 49152
        assert reply.identity == "uuid:2f402f80-da50-11e1-9b23-001788255acc::upnp:rootdevice"
        assert reply.server == "Linux/3.14.0 UPnP/1.0 IpBridge/1.26.0"

    def test_identity_falls_back_to_location(self):
        reply = parse_ssdp_response("HTTP/1.1 200 OK\r\nLocation: http://10.0.0.8/desc.xml\r\n\r\n")
        assert reply.identity == "http://10.0.0.8/desc.xml"
        assert reply.server == DEFAULT_SERVER_NAME
        assert reply.port == 80

    def test_malformed_location_keeps_device_without_address(self):
        reply = parse_ssdp_response("HTTP/1.1 200 OK\r\nLOCATION: not a url\r\n\r\n")
        assert reply is not None
        assert reply.host is None
        assert reply.port is None

    def test_search_request(self):
        request = build_search_request(SSDPConfig()).decode("utf-8")
        assert request.startswith("M-SEARCH * HTTP/1.1\r\n")
        assert "HOST: 239.255.255.250:1900\r\n" in request
        assert 'MAN: "ssdp:discover"\r\n' in request
        assert "MX: 3\r\n" in request
        assert "ST: ssdp:all\r\n" in request
        assert request.endswith("\r\n\r\n")


class TestHandleDatagram:
    def test_well_formed_reply_creates_device(self, registry, quiet_logger):
        scanner = SSDPScanner(registry, logger=quiet_logger)
        device = scanner.handle_datagram(HUE_REPLY.encode("utf-8"), ("192.168.1.20", 1900))

        assert device.address == "192.168.1.20"
        assert device.port == 49152
        assert device.identifier == "Linux/3.14.0 UPnP/1.0 IpBridge/1.26.0"
        assert device.metadata["st"] == "upnp:rootdevice"
        assert list(registry.devices) == [device]

    def test_reply_without_location_produces_no_device(self, registry, quiet_logger):
        scanner = SSDPScanner(registry, logger=quiet_logger)
        assert scanner.handle_datagram(b"HTTP/1.1 200 OK\r\nUSN: uuid:x\r\n\r\n", ("10.0.0.8", 1900)) is None
        assert len(registry) == 0
        assert scanner.replies_discarded == 1

    def test_repeated_replies_are_deduplicated(self, registry, quiet_logger):
        scanner = SSDPScanner(registry, logger=quiet_logger)
        first = scanner.handle_datagram(HUE_REPLY.encode("utf-8"), ("192.168.1.20", 1900))
        second = scanner.handle_datagram(HUE_REPLY.encode("utf-8"), ("192.168.1.20", 1900))

        assert first is second
        assert len(registry) == 1
        assert scanner.replies_received == 2
        assert scanner.report().devices_found == 1


class TestLifecycle:
    def test_sends_search_and_collects_replies(self, registry, quiet_logger):
        fake = FakeSocket(replies=[HUE_REPLY.encode("utf-8")])
        scanner = SSDPScanner(registry, logger=quiet_logger, socket_factory=lambda *args: fake)

        scanner.start(NetworkInfo())
        assert scanner.status == SourceStatus.RUNNING
        assert wait_until(lambda: len(registry) == 1)

        scanner.stop()
        scanner.wait(1.0)

        data, address = fake.sent[0]
        assert address == ("239.255.255.250", 1900)
        assert data.startswith(b"M-SEARCH")
        assert (socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2) in fake.options
        assert DeviceIdentity.ssdp("uuid:2f402f80-da50-11e1-9b23-001788255acc::upnp:rootdevice") in registry

    def test_stop_closes_socket_exactly_once(self, registry, quiet_logger):
        fake = FakeSocket()
        scanner = SSDPScanner(registry, logger=quiet_logger, socket_factory=lambda *args: fake)

        scanner.start(NetworkInfo())
        scanner.stop()
        scanner.stop()
        scanner.wait(1.0)

        assert fake.close_count == 1
        assert scanner.status == SourceStatus.COMPLETED
        assert not scanner._listener.is_alive()

    def test_no_replies_processed_after_stop(self, registry, quiet_logger):
        fake = FakeSocket()
        scanner = SSDPScanner(registry, logger=quiet_logger, socket_factory=lambda *args: fake)

        scanner.start(NetworkInfo())
        scanner.stop()
        scanner.wait(1.0)
        fake.replies.append(HUE_REPLY.encode("utf-8"))

        assert len(registry) == 0

    def test_send_failure_disables_source(self, registry, quiet_logger, error_handler):
        fake = FakeSocket(fail_on="sendto")
        listener = MagicMock()
        scanner = SSDPScanner(registry, logger=quiet_logger, error_handler=error_handler,
                              socket_factory=lambda *args: fake)
        scanner.failure_listener = listener

        scanner.start(NetworkInfo())

        assert scanner.status == SourceStatus.FAILED
        assert fake.close_count == 1
        listener.assert_called_once()
        assert listener.call_args[0][0] is scanner
        assert error_handler.get_error_summary()["errors_by_type"] == {"source_failure": 1}

    def test_socket_creation_failure_disables_source(self, registry, quiet_logger):
        def broken_factory(*args):
            raise OSError(1, "Operation not permitted")

        scanner = SSDPScanner(registry, logger=quiet_logger, socket_factory=broken_factory)
        scanner.start(NetworkInfo())
        scanner.stop()

        assert scanner.status == SourceStatus.FAILED
        assert scanner.report().errors
