"""
Core components for LAN discovery functionality.
"""

from .data_models import (
    Device,
    DeviceCategory,
    DeviceIdentity,
    DiscoverySource,
    HostProbeResult,
    NetworkInfo,
    ProbeKind,
    RegistryEvent,
    RegistryEventKind,
    ScanReport,
    ScanSession,
    ScanState,
    SourceStatus,
    SweepSummary,
)
from .device_classifier import ClassificationRule, DeviceClassifier
from .device_registry import DeviceRegistry
from .manufacturer_lookup import ManufacturerLookup, StaticManufacturerLookup
from .name_parser import CompositeName, oui_prefix, parse_composite_name
from .network_detector import NetworkDetector

__all__ = [
    'Device',
    'DeviceCategory',
    'DeviceIdentity',
    'DiscoverySource',
    'HostProbeResult',
    'NetworkInfo',
    'ProbeKind',
    'RegistryEvent',
    'RegistryEventKind',
    'ScanReport',
    'ScanSession',
    'ScanState',
    'SourceStatus',
    'SweepSummary',
    'ClassificationRule',
    'DeviceClassifier',
    'DeviceRegistry',
    'ManufacturerLookup',
    'StaticManufacturerLookup',
    'CompositeName',
    'oui_prefix',
    'parse_composite_name',
    'NetworkDetector',
]
