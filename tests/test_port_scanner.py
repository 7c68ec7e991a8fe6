"""Tests for the port range scanner."""

import socket
import threading
import time
from unittest.mock import MagicMock

import pytest

from lan_discovery.scanners.port_scanner import PortScanner, ScannedPort


class LoopbackServer:
    """TCP server on 127.0.0.1 that optionally greets every client."""

    def __init__(self, greeting=None):
        self.greeting = greeting
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(5)
        self.sock.settimeout(0.1)
        self.port = self.sock.getsockname()[1]
        self._stop = threading.Event()
        self._clients = []
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self):
        while not self._stop.is_set():
            try:
                client, _ = self.sock.accept()
            except OSError:
                continue
            if self.greeting:
                client.sendall(self.greeting)
            self._clients.append(client)

    def close(self):
        self._stop.set()
        self._thread.join(1.0)
        for client in self._clients:
            client.close()
        self.sock.close()


@pytest.fixture
def scanner(quiet_logger):
    return PortScanner(quiet_logger)


class TestPortScanner:
    def test_open_port_with_banner(self, scanner):
        server = LoopbackServer(b"SSH-2.0-OpenSSH_9.6\r\n")
        try:
            result = scanner.scan("127.0.0.1", server.port, server.port, timeout=1.0)
        finally:
            server.close()

        assert result == [ScannedPort(server.port, "SSH-2.0-OpenSSH_9.6")]

    def test_silent_service_has_no_banner(self, scanner):
        server = LoopbackServer()
        try:
            result = scanner.scan("127.0.0.1", server.port, server.port, timeout=0.3)
        finally:
            server.close()

        assert result == [ScannedPort(server.port, None)]

    def test_binary_banner_is_dropped(self, scanner):
        server = LoopbackServer(b"\xff\xfe\x00\x01")
        try:
            result = scanner.scan("127.0.0.1", server.port, server.port, timeout=1.0)
        finally:
            server.close()

        assert result[0].banner is None

    def test_results_sorted_by_port(self, quiet_logger):
        def connector(address, timeout):
            port = address[1]
            if port % 2:
                raise ConnectionRefusedError()
            time.sleep(0.001 * (10 - port))
            connection = MagicMock()
            connection.__enter__.return_value = connection
            connection.recv.return_value = b""
            return connection

        result = PortScanner(quiet_logger, connector=connector).scan("10.0.0.5", 1, 10)
        assert [scanned.port for scanned in result] == [2, 4, 6, 8, 10]

    def test_connection_after_timeout_is_not_reported(self, quiet_logger):
        connection = MagicMock()
        connection.__enter__.return_value = connection

        def slow_connector(address, timeout):
            time.sleep(0.2)
            return connection

        result = PortScanner(quiet_logger, connector=slow_connector).scan("10.0.0.5", 80, 80, timeout=0.05)

        assert result == []
        connection.__exit__.assert_called_once()

    @pytest.mark.parametrize("start,end", [(0, 10), (10, 0), (-1, 5), (100, 99)])
    def test_invalid_range(self, scanner, start, end):
        assert scanner.scan("127.0.0.1", start, end) == []
