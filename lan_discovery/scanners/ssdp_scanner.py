"""
SSDP discovery source.

Sends one M-SEARCH request to the SSDP multicast group and listens for
unicast replies until stopped. Each reply is parsed as a header block into a
device record.
"""

import socket
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from .base_scanner import BaseDiscoverySource
from ..config.config_loader import SSDPConfig
from ..core.data_models import Device, DiscoverySource, NetworkInfo, SourceStatus
from ..core.device_registry import DeviceRegistry
from ..utils.error_handler import ErrorHandler, SourceStartError
from ..utils.network_utils import host_port_from_url

DEFAULT_SERVER_NAME = "SSDP Device"


@dataclass
class SSDPReply:
    """
    A parsed SSDP reply.

    Attributes:
        identity: Unique service name (USN), falling back to the location URL
        location: Location URL of the device description
        server: Server header, or "SSDP Device" when absent
        host: Host from the location URL, None when it is not a well-formed URL
        port: Port from the location URL (scheme default when not explicit)
        headers: Every header, keys lower-cased
    """
    identity: str
    location: str
    server: str = DEFAULT_SERVER_NAME
    host: Optional[str] = None
    port: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)


def parse_headers(text: str) -> Dict[str, str]:
    """
    Parse a header block into a dict with lower-cased keys.

    Lines without a colon (such as the status line) are ignored. Values are
    split at the first colon only, so URLs survive intact.
    """
    headers: Dict[str, str] = {}
    for line in text.splitlines():
        key, separator, value = line.partition(":")
        if not separator:
            continue
        key = key.strip().lower()
        if key:
            headers[key] = value.strip()
    return headers


def parse_ssdp_response(text: str) -> Optional[SSDPReply]:
    """
    Turn an SSDP reply into an SSDPReply.

    Args:
        text: Decoded reply datagram

    Returns:
        SSDPReply, or None when the reply has no location header
    """
    headers = parse_headers(text)
    location = headers.get("location")
    if not location:
        return None

    host, port = host_port_from_url(location)
    return SSDPReply(
        identity=headers.get("usn") or location,
        location=location,
        server=headers.get("server") or DEFAULT_SERVER_NAME,
        host=host,
        port=port,
        headers=headers,
    )


def build_search_request(config: SSDPConfig) -> bytes:
    lines = [
        "M-SEARCH * HTTP/1.1",
        f"HOST: {config.multicast_group}:{config.port}",
        'MAN: "ssdp:discover"',
        f"MX: {config.mx}",
        f"ST: {config.search_target}",
        "",
        "",
    ]
    return "\r\n".join(lines).encode("utf-8")


class SSDPScanner(BaseDiscoverySource):
    """
    Discovers UPnP devices with a single SSDP M-SEARCH.

    The socket is owned by this source and closed exactly once by ``stop()``.
    A socket that cannot be created, configured or used to send disables the
    source for the session without affecting the others.
    """

    source_type = DiscoverySource.SSDP

    def __init__(
        self,
        registry: DeviceRegistry,
        config: Optional[SSDPConfig] = None,
        logger=None,
        error_handler: Optional[ErrorHandler] = None,
        socket_factory: Callable[..., Any] = socket.socket,
    ):
        super().__init__(registry, logger, error_handler)
        self.config = config or SSDPConfig()
        self._socket_factory = socket_factory
        self._socket = None
        self._socket_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._listener: Optional[threading.Thread] = None
        self.replies_received = 0
        self.replies_discarded = 0

    def start(self, network: NetworkInfo) -> None:
        self.reset()
        self._stop_event = threading.Event()
        self.replies_received = 0
        self.replies_discarded = 0

        try:
            sock = self._open_socket()
        except OSError as e:
            self._log_error(f"SSDP socket unavailable: {e}")
            self._fail(SourceStartError(f"SSDP socket unavailable: {e}"), "open_socket")
            return

        with self._socket_lock:
            self._socket = sock
        self._mark_started()
        self._log_info(f"Sent SSDP M-SEARCH to {self.config.multicast_group}:{self.config.port}")

        self._listener = threading.Thread(
            target=self._listen, args=(sock, self._stop_event), name="ssdp-listener", daemon=True
        )
        self._listener.start()

    def _open_socket(self):
        sock = self._socket_factory(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.config.multicast_ttl)
            sock.bind(("", 0))
            sock.settimeout(self.config.receive_timeout)
            sock.sendto(build_search_request(self.config), (self.config.multicast_group, self.config.port))
        except OSError:
            sock.close()
            raise
        return sock

    def stop(self) -> None:
        self._stop_event.set()
        with self._socket_lock:
            sock, self._socket = self._socket, None
        if sock is not None:
            sock.close()
            self._log_debug("SSDP socket closed")
        self._set_metadata("replies_received", self.replies_received)
        self._set_metadata("replies_discarded", self.replies_discarded)
        self._mark_finished(SourceStatus.COMPLETED)

    def wait(self, timeout: Optional[float] = None) -> None:
        if self._listener is not None:
            self._listener.join(timeout)

    def _listen(self, sock, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                data, sender = sock.recvfrom(self.config.buffer_size)
            except socket.timeout:
                continue
            except OSError as e:
                # Closed by stop(), or the socket died
                if not stop_event.is_set():
                    self._log_warning(f"SSDP listener stopped: {e}")
                break
            if stop_event.is_set():
                break
            self.handle_datagram(data, sender)

    def handle_datagram(self, data: bytes, sender: Tuple[str, int]) -> Optional[Device]:
        """
        Parse one reply and insert the device it describes.

        Returns:
            The registered device, or None if the reply was discarded
        """
        self.replies_received += 1
        reply = parse_ssdp_response(data.decode("utf-8", errors="replace"))
        if reply is None:
            self.replies_discarded += 1
            self._log_debug(f"Discarded SSDP reply without location from {sender[0]}")
            return None

        device, inserted = self._insert(Device.from_ssdp(
            reply.identity,
            server=reply.server,
            host=reply.host,
            port=reply.port,
            headers=reply.headers,
        ))
        if inserted:
            self._log_info(f"Discovered SSDP device {reply.server} at {reply.host or sender[0]}")
        return device
