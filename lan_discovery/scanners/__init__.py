"""
Discovery sources for LAN Discovery.

This package contains the discovery source interface, the three sources
(subnet sweep, mDNS, SSDP), the probe primitives they share and the
standalone port scanner.
"""

from .base_scanner import BaseDiscoverySource, SourceReport
from .subnet_sweep import SubnetSweepScanner
from .mdns_scanner import MDNSScanner
from .ssdp_scanner import SSDPScanner
from .port_scanner import PortScanner, ScannedPort
from .probes import ProbeCompletion, icmp_probe, tcp_probe

__all__ = [
    'BaseDiscoverySource',
    'SourceReport',
    'SubnetSweepScanner',
    'MDNSScanner',
    'SSDPScanner',
    'PortScanner',
    'ScannedPort',
    'ProbeCompletion',
    'icmp_probe',
    'tcp_probe'
]
