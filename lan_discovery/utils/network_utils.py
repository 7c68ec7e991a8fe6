"""
Network utility functions for address handling.

This module provides helper functions for IPv4 validation, /24 prefix
computation, conversion of packed addresses to their numeric text form and
extraction of host/port from URLs.
"""

import ipaddress
import socket
from typing import List, Optional, Tuple
from urllib.parse import urlparse

DEFAULT_URL_PORTS = {"http": 80, "https": 443}


def is_valid_ip(ip_address: str) -> bool:
    """
    Check if a string represents a valid IPv4 address.

    Args:
        ip_address: String to validate as IPv4 address

    Returns:
        bool: True if valid IPv4 address, False otherwise
    """
    try:
        ipaddress.IPv4Address(ip_address)
        return True
    except (ipaddress.AddressValueError, ValueError):
        return False


def local_prefix(ip_address: Optional[str]) -> Optional[str]:
    """
    Return the /24 prefix of an IPv4 address, including the trailing dot.

    Args:
        ip_address: Dotted quad, e.g. "192.168.1.14"

    Returns:
        str: Prefix such as "192.168.1.", or None if the address is malformed
    """
    if not ip_address or not is_valid_ip(ip_address.strip()):
        return None
    parts = ip_address.strip().split(".")
    return ".".join(parts[:3]) + "."


def candidate_addresses(prefix: str, exclude: Optional[List[str]] = None) -> List[str]:
    """
    Enumerate the host addresses .1 to .254 of a /24 prefix.

    Args:
        prefix: Prefix with trailing dot, e.g. "10.0.0."
        exclude: Addresses to leave out (own address, gateway)

    Returns:
        List[str]: Candidate addresses in ascending order
    """
    excluded = set(exclude or [])
    return [
        f"{prefix}{host}"
        for host in range(1, 255)
        if f"{prefix}{host}" not in excluded
    ]


def address_from_bytes(packed: bytes) -> Optional[str]:
    """
    Convert a packed IPv4 or IPv6 address into its numeric text form.

    Args:
        packed: 4 or 16 raw address bytes

    Returns:
        str: Numeric address, or None for any other length
    """
    try:
        if len(packed) == 4:
            return socket.inet_ntop(socket.AF_INET, packed)
        if len(packed) == 16:
            return socket.inet_ntop(socket.AF_INET6, packed)
    except (OSError, ValueError, TypeError):
        return None
    return None


def host_port_from_url(url: str) -> Tuple[Optional[str], Optional[int]]:
    """
    Extract host and port from a URL.

    When the URL carries no explicit port the scheme default is used
    (80 for http, 443 for https).

    Args:
        url: URL such as "http://192.168.1.20:49152/desc.xml"

    Returns:
        Tuple[host, port]: (None, None) when the URL is not well-formed
    """
    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
        port = parsed.port
    except (ValueError, AttributeError):
        return None, None

    if not parsed.scheme or not host:
        return None, None

    if port is None:
        port = DEFAULT_URL_PORTS.get(parsed.scheme.lower())
    return host, port
