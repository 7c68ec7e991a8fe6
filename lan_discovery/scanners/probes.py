"""
Probe primitives: single-host TCP connect and ICMP echo.

Each probe completes exactly once. The natural outcome of the network
operation races a timeout; whichever fires first wins and the loser is
ignored by a ProbeCompletion guard.
"""

import platform
import socket
import subprocess
import threading
from typing import Any, Callable, Optional

from ..utils.error_handler import (
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    ErrorType,
    ProbeError,
)

ProbeCallback = Callable[[bool], None]


class ProbeCompletion:
    """
    One-shot completion shared by the natural completion path and the timeout path.

    The first call to ``complete`` stores the result, wakes waiters and invokes
    the optional callback; later calls return False and have no effect.
    """

    def __init__(self, on_complete: Optional[Callable[[Any], None]] = None):
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._completed = False
        self._result: Any = None
        self._on_complete = on_complete

    def complete(self, result: Any) -> bool:
        """
        Complete with ``result`` if nobody completed first.

        Returns:
            bool: True if this call won the race
        """
        with self._lock:
            if self._completed:
                return False
            self._completed = True
            self._result = result
        self._done.set()
        if self._on_complete is not None:
            self._on_complete(result)
        return True

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def result(self) -> Any:
        return self._result

    def wait(self, timeout: Optional[float] = None) -> Any:
        self._done.wait(timeout)
        return self._result


class _ConnectionCloser:
    """Closes a connection exactly once, even if it is attached after close()."""

    def __init__(self):
        self._lock = threading.Lock()
        self._connection = None
        self._closed = False

    def attach(self, connection) -> None:
        with self._lock:
            if not self._closed:
                self._connection = connection
                return
        connection.close()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            connection, self._connection = self._connection, None
        if connection is not None:
            try:
                connection.close()
            except OSError:
                pass


def tcp_probe(
    address: str,
    port: int,
    timeout: float = 1.0,
    on_complete: Optional[ProbeCallback] = None,
    connector: Callable[..., Any] = socket.create_connection,
    error_handler: Optional[ErrorHandler] = None,
) -> bool:
    """
    Attempt a TCP connection to ``address:port``.

    Args:
        address: Target IPv4 address
        port: Target TCP port
        timeout: Upper bound for the whole probe in seconds
        on_complete: Called exactly once with the result
        connector: Connection factory, ``socket.create_connection`` by default
        error_handler: Receives unexpected failures (refusals are not errors)

    Returns:
        bool: True only if the connection became ready before the timeout
    """
    completion = ProbeCompletion(on_complete)
    closer = _ConnectionCloser()

    def on_timeout() -> None:
        if completion.complete(False):
            closer.close()

    timer = threading.Timer(timeout, on_timeout)
    timer.daemon = True
    timer.start()

    try:
        connection = connector((address, port), timeout=timeout)
        closer.attach(connection)
        completion.complete(True)
    except (ConnectionRefusedError, socket.timeout, TimeoutError):
        completion.complete(False)
    except OSError as e:
        completion.complete(False)
        if error_handler is not None:
            error_handler.handle_error(
                e,
                ErrorContext(
                    error_type=ErrorType.PROBE_FAILURE,
                    severity=ErrorSeverity.LOW,
                    operation="tcp_probe",
                    component="probes",
                    additional_info={"address": address, "port": port},
                ),
            )
    finally:
        timer.cancel()
        closer.close()

    return completion.result


def _ping_command(address: str, timeout: float) -> list:
    if platform.system().lower() == "windows":
        return ["ping", "-n", "1", "-w", str(int(timeout * 1000)), address]
    return ["ping", "-c", "1", "-W", str(max(1, int(round(timeout)))), address]


def _icmp_via_ping(address: str, timeout: float) -> bool:
    result = subprocess.run(
        _ping_command(address, timeout),
        capture_output=True,
        text=True,
        timeout=timeout + 1,
    )
    return result.returncode == 0


def _icmp_via_scapy(address: str, timeout: float) -> bool:
    # Raw sockets need elevated privileges
    try:
        from scapy.all import ICMP, IP, sr1
    except ImportError as e:
        raise ProbeError("scapy is required for icmp_method: scapy") from e

    reply = sr1(IP(dst=address) / ICMP(), timeout=timeout, verbose=False)
    return reply is not None


def icmp_probe(
    address: str,
    timeout: float = 1.0,
    method: str = "ping",
    on_complete: Optional[ProbeCallback] = None,
    error_handler: Optional[ErrorHandler] = None,
) -> bool:
    """
    Send a single ICMP echo request to ``address``.

    Args:
        address: Target IPv4 address
        timeout: Seconds to wait for the echo reply
        method: "ping" to use the system ping command, "scapy" for raw sockets
        on_complete: Called exactly once with the result
        error_handler: Receives failures to run the probe at all

    Returns:
        bool: True if a reply arrived before the timeout
    """
    completion = ProbeCompletion(on_complete)
    try:
        if method == "scapy":
            replied = _icmp_via_scapy(address, timeout)
        else:
            replied = _icmp_via_ping(address, timeout)
        completion.complete(replied)
    except subprocess.TimeoutExpired:
        completion.complete(False)
    except (OSError, ProbeError, subprocess.SubprocessError) as e:
        completion.complete(False)
        if error_handler is not None:
            error_handler.handle_error(
                e,
                ErrorContext(
                    error_type=ErrorType.PROBE_FAILURE,
                    severity=ErrorSeverity.LOW,
                    operation=f"icmp_probe_{method}",
                    component="probes",
                    additional_info={"address": address},
                ),
            )
    return completion.result
