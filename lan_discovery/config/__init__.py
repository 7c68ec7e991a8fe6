"""Configuration loading for the LAN discovery engine."""

from .config_loader import (
    ConfigLoader,
    DiscoveryConfig,
    MDNSConfig,
    ScanConfig,
    SSDPConfig,
    SweepConfig,
)

__all__ = [
    "ConfigLoader",
    "DiscoveryConfig",
    "MDNSConfig",
    "ScanConfig",
    "SSDPConfig",
    "SweepConfig",
]
