"""
Service-type catalog for multicast service discovery.

One browsing session is opened per entry. The catalog only bounds which
kinds of advertised services can be seen; it is immutable at runtime.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from .data_models import DeviceCategory

DEFAULT_DOMAIN = "local"

SERVICE_CATALOG: Dict[str, Tuple[str, ...]] = {
    "common": (
        "_http._tcp",
        "_https._tcp",
        "_ftp._tcp",
        "_ssh._tcp",
        "_telnet._tcp",
        "_smb._tcp",
        "_afpovertcp._tcp",
        "_nfs._tcp",
        "_workstation._tcp",
    ),
    "apple": (
        "_airdrop._tcp",
        "_airplay._tcp",
        "_apple-mobdev2._tcp",
        "_adisk._tcp",
        "_time-machine._tcp",
        "_airport._tcp",
        "_device-info._tcp",
        "_services._dns-sd._udp",
    ),
    "printing": (
        "_ipp._tcp",
        "_ipps._tcp",
        "_printer._tcp",
        "_pdl-datastream._tcp",
        "_scanner._tcp",
    ),
    "media": (
        "_raop._tcp",
        "_daap._tcp",
        "_dacp._tcp",
        "_spotify-connect._tcp",
        "_googlecast._tcp",
    ),
    "file_sharing": (
        "_bluetoothd2._tcp",
        "_btsync._tcp",
        "_distcc._tcp",
        "_webdav._tcp",
    ),
    "remote_management": (
        "_rfb._tcp",
        "_remotemanagement._tcp",
    ),
    "iot": (
        "_hap._tcp",
        "_presence._tcp",
        "_mqtt._tcp",
        "_coap._udp",
        "_peertalk._tcp",
    ),
    "misc": (
        "_time._udp",
        "_timedate._udp",
        "_tcpchat._tcp",
        "_acp-sync._tcp",
        "_touch-able._tcp",
        "_airpod._tcp",
        "_teamviewer._tcp",
        "_vnc._tcp",
        "_sftp-ssh._tcp",
        "_octoprint._tcp",
        "_xbmc-jsonrpc._tcp",
        "_plexmediasvr._tcp",
    ),
}

ALL_SERVICE_TYPES: Tuple[str, ...] = tuple(
    service_type for group in SERVICE_CATALOG.values() for service_type in group
)

# Display category suggested by a catalog group
GROUP_CATEGORIES: Dict[str, DeviceCategory] = {
    "printing": DeviceCategory.PRINTER,
    "media": DeviceCategory.MEDIA,
    "file_sharing": DeviceCategory.STORAGE,
    "iot": DeviceCategory.IOT,
}


def service_types(groups: Optional[Iterable[str]] = None) -> List[str]:
    """
    Service types of the selected catalog groups, in catalog order.

    Args:
        groups: Group names; all groups when omitted

    Returns:
        List of service types such as ``_ipp._tcp``

    Raises:
        KeyError: If a group name is unknown
    """
    if groups is None:
        return list(ALL_SERVICE_TYPES)
    return [service_type for group in groups for service_type in SERVICE_CATALOG[group]]


def group_of(service_type: str) -> Optional[str]:
    """Catalog group containing ``service_type``, or None."""
    normalized = normalize_service_type(service_type)
    for group, members in SERVICE_CATALOG.items():
        if normalized in members:
            return group
    return None


def normalize_service_type(service_type: str) -> str:
    """Strip a trailing domain and dot: ``_ipp._tcp.local.`` -> ``_ipp._tcp``."""
    labels = [label for label in service_type.split(".") if label]
    protocol_index = next(
        (i for i, label in enumerate(labels) if label in ("_tcp", "_udp")), len(labels) - 1
    )
    return ".".join(labels[:protocol_index + 1])


def to_fqdn(service_type: str, domain: str = DEFAULT_DOMAIN) -> str:
    """Fully qualified browse type: ``_ipp._tcp`` -> ``_ipp._tcp.local.``."""
    return f"{normalize_service_type(service_type)}.{domain.strip('.')}."
