"""
Manufacturer lookup by hardware address prefix.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from .name_parser import oui_prefix, parse_composite_name

# Small built-in OUI table for common home and office equipment
DEFAULT_OUI_TABLE: Dict[str, str] = {
    "a4:cf:99": "Apple, Inc.",
    "98:50:2e": "Apple, Inc.",
    "9c:8c:6e": "Apple, Inc.",
    "00:26:b0": "Apple, Inc.",
    "e0:cb:4e": "Apple, Inc.",
    "ec:35:86": "Apple, Inc.",
    "f0:99:bf": "Apple, Inc.",
    "dc:2b:2a": "Apple, Inc.",
    "1c:36:bb": "Apple, Inc.",
    "58:b0:35": "Apple, Inc.",
    "00:1f:5b": "Cisco Systems, Inc.",
    "00:16:6f": "Cisco Systems, Inc.",
    "00:05:9a": "Cisco Systems, Inc.",
    "68:bc:0c": "Cisco Systems, Inc.",
    "2c:54:2d": "Cisco Systems, Inc.",
    "00:1a:2b": "Dell Inc.",
    "34:02:86": "Dell Inc.",
    "f4:8e:92": "Dell Inc.",
    "bc:30:5b": "Dell Inc.",
    "14:18:77": "Dell Inc.",
    "00:14:22": "Intel Corporate",
    "68:05:ca": "Intel Corporate",
    "3c:d9:2b": "Intel Corporate",
    "30:07:4d": "Hewlett Packard",
    "00:1a:4b": "Hewlett Packard",
    "b4:b5:2f": "Hewlett Packard",
    "c4:34:6b": "Hewlett Packard",
    "14:02:ec": "Hewlett Packard",
    "b8:27:eb": "Raspberry Pi Foundation",
    "e4:5f:01": "Raspberry Pi Foundation",
    "dc:a6:32": "Raspberry Pi Foundation",
    "d0:3d:29": "Amazon Technologies Inc.",
    "7c:ed:8d": "Amazon Technologies Inc.",
    "78:2b:46": "Amazon Technologies Inc.",
    "00:50:f2": "Microsoft Corporation",
    "38:e0:4d": "Microsoft Corporation",
}


class ManufacturerLookup(ABC):
    """Maps a three-octet hardware address prefix to a vendor name."""

    @abstractmethod
    def manufacturer(self, prefix: str) -> Optional[str]:
        """
        Look up the vendor for a prefix such as ``a4:cf:99``.

        Lookups are case-insensitive, synchronous and read-only.
        """
        pass

    def manufacturer_for_name(self, advertised_name: str) -> Optional[str]:
        """Vendor for an advertised name carrying a MAC-like prefix, if any."""
        mac_like = parse_composite_name(advertised_name).mac_like
        if mac_like is None:
            return None
        prefix = oui_prefix(mac_like)
        if prefix is None:
            return None
        return self.manufacturer(prefix)


class StaticManufacturerLookup(ManufacturerLookup):
    """ManufacturerLookup over an in-memory table."""

    def __init__(self, table: Optional[Dict[str, str]] = None):
        source = DEFAULT_OUI_TABLE if table is None else table
        self._table = {prefix.lower(): vendor for prefix, vendor in source.items()}

    def manufacturer(self, prefix: str) -> Optional[str]:
        return self._table.get(prefix.strip().lower())

    def __len__(self) -> int:
        return len(self._table)
