"""Tests for the TCP and ICMP probe primitives."""

import socket
import subprocess
import sys
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from lan_discovery.scanners.probes import ProbeCompletion, _ping_command, icmp_probe, tcp_probe
from lan_discovery.utils.error_handler import ErrorType, ProbeError


@pytest.fixture
def listening_port():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(5)
    yield server.getsockname()[1]
    server.close()


@pytest.fixture
def closed_port():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    return port


class TestProbeCompletion:
    def test_first_completion_wins(self):
        calls = []
        completion = ProbeCompletion(calls.append)

        assert completion.complete(True) is True
        assert completion.complete(False) is False
        assert completion.result is True
        assert completion.done
        assert calls == [True]

    def test_concurrent_completions_fire_once(self):
        calls = []
        completion = ProbeCompletion(calls.append)
        barrier = threading.Barrier(8)
        winners = []

        def racer(value):
            barrier.wait()
            if completion.complete(value):
                winners.append(value)

        threads = [threading.Thread(target=racer, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(winners) == 1
        assert calls == winners
        assert completion.result == winners[0]

    def test_wait_returns_result(self):
        completion = ProbeCompletion()
        threading.Timer(0.05, completion.complete, args=("done",)).start()
        assert completion.wait(1.0) == "done"


class TestTCPProbe:
    def test_open_port(self, listening_port):
        calls = []
        assert tcp_probe("127.0.0.1", listening_port, timeout=1.0, on_complete=calls.append) is True
        assert calls == [True]

    def test_closed_port_completes_false_once_within_timeout(self, closed_port):
        calls = []
        timeout = 0.5
        started = time.monotonic()

        result = tcp_probe("127.0.0.1", closed_port, timeout=timeout, on_complete=calls.append)

        assert result is False
        assert calls == [False]
        assert time.monotonic() - started <= timeout + 0.5

    def test_timeout_wins_over_late_connection(self):
        calls = []
        late_connection = MagicMock()

        def slow_connector(address, timeout):
            time.sleep(0.2)
            return late_connection

        result = tcp_probe("10.0.0.5", 80, timeout=0.05, on_complete=calls.append, connector=slow_connector)

        assert result is False
        assert calls == [False]
        late_connection.close.assert_called_once()

    def test_timeout_racing_refusal_fires_once(self):
        calls = []

        def refusing_connector(address, timeout):
            time.sleep(0.05)
            raise ConnectionRefusedError()

        result = tcp_probe("10.0.0.5", 80, timeout=0.05, on_complete=calls.append, connector=refusing_connector)

        assert result is False
        assert calls == [False]

    def test_refusal_is_not_reported(self):
        handler = MagicMock()
        connector = MagicMock(side_effect=ConnectionRefusedError())

        assert tcp_probe("10.0.0.5", 80, connector=connector, error_handler=handler) is False
        handler.handle_error.assert_not_called()

    def test_unexpected_error_goes_to_handler(self):
        handler = MagicMock()
        error = OSError(101, "Network is unreachable")
        connector = MagicMock(side_effect=error)

        assert tcp_probe("10.0.0.5", 80, connector=connector, error_handler=handler) is False
        handled_error, context = handler.handle_error.call_args[0]
        assert handled_error is error
        assert context.error_type == ErrorType.PROBE_FAILURE
        assert context.additional_info == {"address": "10.0.0.5", "port": 80}

    def test_successful_connection_is_closed(self):
        connection = MagicMock()
        assert tcp_probe("10.0.0.5", 80, connector=MagicMock(return_value=connection)) is True
        connection.close.assert_called_once()


class TestICMPProbe:
    @patch("lan_discovery.scanners.probes.subprocess.run")
    def test_ping_reply(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)
        calls = []

        assert icmp_probe("10.0.0.5", timeout=1.0, on_complete=calls.append) is True
        assert calls == [True]
        assert mock_run.call_args[0][0][-1] == "10.0.0.5"

    @patch("lan_discovery.scanners.probes.subprocess.run")
    def test_ping_no_reply(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1)
        assert icmp_probe("10.0.0.5") is False

    @patch("lan_discovery.scanners.probes.subprocess.run")
    def test_ping_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ping", timeout=2)
        handler = MagicMock()

        assert icmp_probe("10.0.0.5", error_handler=handler) is False
        handler.handle_error.assert_not_called()

    @patch("lan_discovery.scanners.probes.subprocess.run")
    def test_missing_ping_binary(self, mock_run):
        mock_run.side_effect = FileNotFoundError("ping")
        handler = MagicMock()

        assert icmp_probe("10.0.0.5", error_handler=handler) is False
        handler.handle_error.assert_called_once()
        assert handler.handle_error.call_args[0][1].operation == "icmp_probe_ping"

    def test_scapy_unavailable(self):
        handler = MagicMock()
        with patch.dict(sys.modules, {"scapy.all": None}):
            assert icmp_probe("10.0.0.5", method="scapy", error_handler=handler) is False

        handled_error = handler.handle_error.call_args[0][0]
        assert isinstance(handled_error, ProbeError)

    @patch("lan_discovery.scanners.probes.platform.system", return_value="Linux")
    def test_ping_command_posix(self, _):
        assert _ping_command("10.0.0.5", 1.0) == ["ping", "-c", "1", "-W", "1", "10.0.0.5"]

    @patch("lan_discovery.scanners.probes.platform.system", return_value="Windows")
    def test_ping_command_windows(self, _):
        assert _ping_command("10.0.0.5", 1.5) == ["ping", "-n", "1", "-w", "1500", "10.0.0.5"]
