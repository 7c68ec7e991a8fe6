"""
TCP port range scanner with banner grabbing.

Used from the CLI to inspect a single discovered host. Every port in the
range is probed concurrently; each probe completes once, either by the
connection outcome or by its timeout.
"""

import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .probes import ProbeCompletion
from ..utils.logger import get_logger

BANNER_SIZE = 256


@dataclass(frozen=True)
class ScannedPort:
    """
    An open TCP port.

    Attributes:
        port: Port number
        banner: First bytes sent by the service decoded as UTF-8, if any
    """
    port: int
    banner: Optional[str] = None


class PortScanner:
    """Concurrent TCP connect scanner for a port range on one host."""

    def __init__(
        self,
        logger=None,
        max_workers: int = 100,
        connector: Callable[..., Any] = socket.create_connection,
    ):
        self.logger = logger or get_logger("PortScanner")
        self.max_workers = max_workers
        self._connector = connector

    def scan(self, address: str, start_port: int, end_port: int, timeout: float = 1.0) -> List[ScannedPort]:
        """
        Scan ``start_port`` through ``end_port`` inclusive.

        Args:
            address: Host to scan
            start_port: First port, must be positive
            end_port: Last port, must not be below start_port
            timeout: Per-port connect timeout, also used for the banner read

        Returns:
            Open ports sorted by port number; empty for an invalid range
        """
        if start_port <= 0 or end_port <= 0 or start_port > end_port:
            self.logger.warning(f"Invalid port range {start_port}-{end_port}")
            return []

        ports = range(start_port, end_port + 1)
        self.logger.info(f"Scanning {address} ports {start_port}-{end_port}")

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ports))) as executor:
            results = executor.map(lambda port: self._scan_port(address, port, timeout), ports)
            open_ports = sorted(
                (result for result in results if result is not None), key=lambda p: p.port
            )

        self.logger.info(f"Found {len(open_ports)} open ports on {address}")
        return open_ports

    def _scan_port(self, address: str, port: int, timeout: float) -> Optional[ScannedPort]:
        connected = ProbeCompletion()
        timer = threading.Timer(timeout, connected.complete, args=(False,))
        timer.daemon = True
        timer.start()

        try:
            connection = self._connector((address, port), timeout=timeout)
        except OSError:
            connected.complete(False)
            return None
        finally:
            timer.cancel()

        with connection:
            if not connected.complete(True):
                # Timed out before the connection became ready
                return None
            banner = self._grab_banner(connection, timeout)

        self.logger.debug(f"{address}:{port} open", banner=banner or "-")
        return ScannedPort(port, banner)

    def _grab_banner(self, connection, timeout: float) -> Optional[str]:
        try:
            connection.settimeout(timeout)
            data = connection.recv(BANNER_SIZE)
        except OSError:
            return None
        if not data:
            return None
        try:
            return data.decode("utf-8").strip() or None
        except UnicodeDecodeError:
            return None
