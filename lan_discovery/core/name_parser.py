"""
Parsing of composite advertised service names.

Some devices advertise instance names of the form
``<mac-like>@<remainder>``, e.g. ``A4CF99725E8A@fe80::1c2b:3dff:fe4e:5f60-printer``.
The format is not standardized; the fields extracted here are cosmetic
metadata only and never influence device identity.
"""

import re
from dataclasses import dataclass
from typing import Optional

_NON_HEX_OR_COLON = re.compile(r"[^A-Fa-f0-9:]")
LINK_LOCAL_PREFIX = "fe80::"


@dataclass(frozen=True)
class CompositeName:
    """
    Fields extracted from a composite advertised name.

    Attributes:
        mac_like: Text before the first ``@``
        link_local: IPv6 link-local address when the remainder starts with ``fe80::``
        additional_info: Text after the first ``-`` of a link-local remainder
    """
    mac_like: Optional[str] = None
    link_local: Optional[str] = None
    additional_info: Optional[str] = None


def parse_composite_name(name: str) -> CompositeName:
    """
    Split ``<mac-like>@<remainder>`` into its parts.

    Both sides of the ``@`` must be non-empty, otherwise nothing is extracted.
    The remainder is only interpreted when it starts with ``fe80::``
    (case-insensitive): the link-local address runs up to the first ``-`` and
    anything after that ``-`` is additional information.

    Args:
        name: Advertised instance name

    Returns:
        CompositeName with the fields that could be extracted
    """
    before, separator, remainder = name.partition("@")
    if not separator or not before or not remainder:
        return CompositeName()

    if not remainder.lower().startswith(LINK_LOCAL_PREFIX):
        return CompositeName(mac_like=before)

    link_local, dash, additional = remainder.partition("-")
    return CompositeName(
        mac_like=before,
        link_local=link_local,
        additional_info=additional if dash else None,
    )


def oui_prefix(raw_mac: str) -> Optional[str]:
    """
    Return the first three octets of a MAC-like string for vendor lookup.

    Accepts ``A4CF99725E8A`` as well as ``A4:CF:99:72:5E:8A``. Characters other
    than hex digits and colons are dropped first.

    Args:
        raw_mac: MAC-like text

    Returns:
        str: Lower-case prefix such as ``a4:cf:99``, or None unless exactly
        12 hex digits remain
    """
    hex_digits = _NON_HEX_OR_COLON.sub("", raw_mac).lower().replace(":", "")
    if len(hex_digits) != 12:
        return None
    return ":".join(hex_digits[i:i + 2] for i in range(0, 6, 2))
