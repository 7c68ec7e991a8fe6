"""
Local network detection for the subnet sweep.

This module provides the NetworkDetector class which finds the host's own
interface address and derives the /24 prefix swept by the subnet sweep.
"""

import socket
from typing import Callable, Optional

from .data_models import NetworkInfo
from ..utils.error_handler import ConfigurationError
from ..utils.logger import get_logger
from ..utils.network_utils import is_valid_ip, local_prefix


class NetworkDetector:
    """
    Detects the local interface address and the /24 prefix to sweep.

    The default route interface is found with the UDP connect trick: connecting
    a datagram socket sends nothing but makes the kernel pick the outgoing
    interface, whose address ``getsockname`` then reports.
    """

    PROBE_DESTINATION = ("8.8.8.8", 80)

    def __init__(
        self,
        interface_address: Optional[str] = None,
        logger=None,
        socket_factory: Callable[..., socket.socket] = socket.socket,
    ):
        """
        Initialize the NetworkDetector.

        Args:
            interface_address: Configured address overriding detection
            logger: Logger instance
            socket_factory: Factory for the datagram socket used by detection
        """
        self.interface_address = interface_address
        self.logger = logger or get_logger("NetworkDetector")
        self._socket_factory = socket_factory

    def get_network_info(self, skip_gateway: bool = False) -> NetworkInfo:
        """
        Detect the local address and compute the sweep prefix.

        Args:
            skip_gateway: Also exclude ``<prefix>1`` from the sweep

        Returns:
            NetworkInfo with host_ip, prefix and the excluded addresses

        Raises:
            ConfigurationError: If no usable IPv4 address can be determined
        """
        host_ip = self.interface_address or self._get_ip_via_socket()
        prefix = local_prefix(host_ip)
        if prefix is None:
            raise ConfigurationError(f"Cannot derive a /24 prefix from local address {host_ip!r}")

        excluded = [host_ip]
        gateway = f"{prefix}1"
        if skip_gateway and gateway != host_ip:
            excluded.append(gateway)

        self.logger.info(f"Host IP address: {host_ip}")
        self.logger.debug(f"Sweep prefix: {prefix}", excluded=len(excluded))
        return NetworkInfo(host_ip=host_ip, prefix=prefix, excluded_addresses=excluded)

    def _get_ip_via_socket(self) -> str:
        try:
            with self._socket_factory(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.connect(self.PROBE_DESTINATION)
                local_ip = s.getsockname()[0]
        except OSError as e:
            self.logger.warning(f"Socket method failed: {e}, trying hostname resolution")
            return self._get_ip_via_hostname()

        if not is_valid_ip(local_ip) or local_ip.startswith("0."):
            return self._get_ip_via_hostname()
        return local_ip

    def _get_ip_via_hostname(self) -> str:
        try:
            local_ip = socket.gethostbyname(socket.gethostname())
        except OSError as e:
            raise ConfigurationError(f"Network detection failed: {e}")
        if local_ip.startswith("127."):
            raise ConfigurationError(f"Only a loopback address is available ({local_ip})")
        return local_ip
