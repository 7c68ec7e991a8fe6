"""
Configuration loader for the LAN discovery engine.
Handles loading and validation of YAML configuration files with fallback to defaults.
"""

import yaml
from typing import Any, Dict, List, Optional
from dataclasses import asdict, dataclass, field
from pathlib import Path

from ..core.service_catalog import SERVICE_CATALOG
from ..utils.logger import Logger, get_logger


@dataclass
class ScanConfig:
    """Configuration for the scan lifecycle."""
    duration: float = 25.0
    enable_sweep: bool = True
    enable_mdns: bool = True
    enable_ssdp: bool = True
    strict_source_failures: bool = False
    interface_address: Optional[str] = None


@dataclass
class SweepConfig:
    """Configuration for the subnet sweep."""
    ports: List[int] = field(default_factory=lambda: [80, 443, 22, 445, 8080])
    probe_timeout: float = 1.0
    batch_size: int = 32
    icmp_enabled: bool = True
    icmp_method: str = "ping"  # ping, scapy
    icmp_timeout: float = 1.0
    skip_gateway: bool = False

    def estimated_duration(self, host_count: int = 254) -> float:
        """
        Worst-case sweep time when no host answers.

        Every batch waits for its slowest host, which pays the TCP probe
        timeout and then the ICMP timeout.
        """
        batches = -(-host_count // self.batch_size)
        per_host = self.probe_timeout + (self.icmp_timeout if self.icmp_enabled else 0.0)
        return batches * per_host


@dataclass
class MDNSConfig:
    """Configuration for multicast service discovery."""
    resolve_timeout: float = 10.0
    fallback_timeout: float = 5.0
    resolve_workers: int = 8
    service_types: Optional[List[str]] = None  # None browses the full catalog
    service_groups: Optional[List[str]] = None  # catalog groups, used when service_types is None


@dataclass
class SSDPConfig:
    """Configuration for SSDP discovery."""
    multicast_group: str = "239.255.255.250"
    port: int = 1900
    search_target: str = "ssdp:all"
    mx: int = 3
    multicast_ttl: int = 2
    buffer_size: int = 2048
    receive_timeout: float = 0.5


@dataclass
class DiscoveryConfig:
    """Bundle of every configuration section used by the scan controller."""
    scan: ScanConfig = field(default_factory=ScanConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    mdns: MDNSConfig = field(default_factory=MDNSConfig)
    ssdp: SSDPConfig = field(default_factory=SSDPConfig)


class ConfigLoader:
    """
    Loads and validates YAML configuration files for the discovery sources.
    Provides fallback to default configurations when files are missing.
    """

    VALID_ICMP_METHODS = ["ping", "scapy"]

    def __init__(self, config_dir: Optional[str] = None, logger: Optional[Logger] = None):
        """
        Initialize ConfigLoader.

        Args:
            config_dir: Directory containing configuration files.
                       Defaults to the config directory relative to this file.
            logger: Logger used for validation warnings
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent
        else:
            self.config_dir = Path(config_dir)

        self.logger = logger or get_logger("ConfigLoader")

    def _read_section(self, config_file: str, section: str) -> Optional[Dict[str, Any]]:
        """
        Read one top-level section of a YAML file.

        Returns:
            The section mapping, or None when the caller should use defaults
        """
        config_path = self.config_dir / config_file
        label = section.upper()

        if not config_path.exists():
            self.logger.warning(f"{label} config file not found at {config_path}. Using default configuration.")
            return None

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error(f"Error parsing {label} config file {config_path}: {e}")
            self.logger.warning(f"Using default {label} configuration.")
            return None
        except OSError as e:
            self.logger.error(f"Unable to read {label} config file {config_path}: {e}")
            self.logger.warning(f"Using default {label} configuration.")
            return None

        if not isinstance(config_data, dict) or not isinstance(config_data.get(section), dict):
            self.logger.warning(f"Invalid {label} config structure in {config_path}. Using default configuration.")
            return None

        return config_data[section]

    def load_scan_config(self, config_file: str = "scan_config.yml") -> ScanConfig:
        """
        Load scan lifecycle configuration from YAML file.

        Args:
            config_file: Name of the scan configuration file

        Returns:
            ScanConfig object with loaded or default configuration
        """
        data = self._read_section(config_file, 'scan')
        if data is None:
            return ScanConfig()

        defaults = ScanConfig()
        return ScanConfig(
            duration=self._validate_positive_float(data.get('duration', defaults.duration), 'duration', defaults.duration),
            enable_sweep=self._validate_bool(data.get('enable_sweep', True), 'enable_sweep', True),
            enable_mdns=self._validate_bool(data.get('enable_mdns', True), 'enable_mdns', True),
            enable_ssdp=self._validate_bool(data.get('enable_ssdp', True), 'enable_ssdp', True),
            strict_source_failures=self._validate_bool(
                data.get('strict_source_failures', False), 'strict_source_failures', False
            ),
            interface_address=data.get('interface_address'),
        )

    def load_sweep_config(self, config_file: str = "sweep_config.yml") -> SweepConfig:
        """
        Load subnet sweep configuration from YAML file.

        Args:
            config_file: Name of the sweep configuration file

        Returns:
            SweepConfig object with loaded or default configuration
        """
        data = self._read_section(config_file, 'sweep')
        if data is None:
            return SweepConfig()

        defaults = SweepConfig()
        return SweepConfig(
            ports=self._validate_ports(data.get('ports', defaults.ports), defaults.ports),
            probe_timeout=self._validate_positive_float(
                data.get('probe_timeout', defaults.probe_timeout), 'probe_timeout', defaults.probe_timeout
            ),
            batch_size=self._validate_positive_int(data.get('batch_size', defaults.batch_size), 'batch_size', defaults.batch_size),
            icmp_enabled=self._validate_bool(data.get('icmp_enabled', True), 'icmp_enabled', True),
            icmp_method=self._validate_icmp_method(data.get('icmp_method', defaults.icmp_method)),
            icmp_timeout=self._validate_positive_float(
                data.get('icmp_timeout', defaults.icmp_timeout), 'icmp_timeout', defaults.icmp_timeout
            ),
            skip_gateway=self._validate_bool(data.get('skip_gateway', False), 'skip_gateway', False),
        )

    def load_mdns_config(self, config_file: str = "mdns_config.yml") -> MDNSConfig:
        """
        Load multicast service discovery configuration from YAML file.

        Args:
            config_file: Name of the mDNS configuration file

        Returns:
            MDNSConfig object with loaded or default configuration
        """
        data = self._read_section(config_file, 'mdns')
        if data is None:
            return MDNSConfig()

        defaults = MDNSConfig()
        service_types = data.get('service_types')
        if service_types is not None and (
            not isinstance(service_types, list) or not all(isinstance(t, str) for t in service_types)
        ):
            self.logger.warning(f"Invalid service_types: {service_types}. Must be a list of strings. Using full catalog")
            service_types = None

        return MDNSConfig(
            service_groups=self._validate_service_groups(data.get('service_groups')),
            resolve_timeout=self._validate_positive_float(
                data.get('resolve_timeout', defaults.resolve_timeout), 'resolve_timeout', defaults.resolve_timeout
            ),
            fallback_timeout=self._validate_positive_float(
                data.get('fallback_timeout', defaults.fallback_timeout), 'fallback_timeout', defaults.fallback_timeout
            ),
            resolve_workers=self._validate_positive_int(
                data.get('resolve_workers', defaults.resolve_workers), 'resolve_workers', defaults.resolve_workers
            ),
            service_types=service_types,
        )

    def _validate_service_groups(self, groups: Any) -> Optional[List[str]]:
        """
        Keep the known catalog group names.

        Returns:
            Validated group names, or None to browse every group
        """
        if groups is None:
            return None
        if not isinstance(groups, list):
            self.logger.warning(f"Invalid service_groups: {groups}. Must be a list. Using full catalog")
            return None

        valid_groups = []
        for group in groups:
            if group in SERVICE_CATALOG:
                valid_groups.append(group)
            else:
                self.logger.warning(
                    f"Unknown service group: {group}. Valid groups: {', '.join(SERVICE_CATALOG)}"
                )
        return valid_groups or None

    def load_ssdp_config(self, config_file: str = "ssdp_config.yml") -> SSDPConfig:
        """
        Load SSDP configuration from YAML file.

        Args:
            config_file: Name of the SSDP configuration file

        Returns:
            SSDPConfig object with loaded or default configuration
        """
        data = self._read_section(config_file, 'ssdp')
        if data is None:
            return SSDPConfig()

        defaults = SSDPConfig()
        port = self._validate_positive_int(data.get('port', defaults.port), 'port', defaults.port)
        if port > 65535:
            self.logger.warning(f"Invalid port: {port}. Must be <= 65535. Using default: {defaults.port}")
            port = defaults.port

        return SSDPConfig(
            multicast_group=str(data.get('multicast_group', defaults.multicast_group)),
            port=port,
            search_target=str(data.get('search_target', defaults.search_target)),
            mx=self._validate_positive_int(data.get('mx', defaults.mx), 'mx', defaults.mx),
            multicast_ttl=self._validate_positive_int(
                data.get('multicast_ttl', defaults.multicast_ttl), 'multicast_ttl', defaults.multicast_ttl
            ),
            buffer_size=self._validate_positive_int(
                data.get('buffer_size', defaults.buffer_size), 'buffer_size', defaults.buffer_size
            ),
            receive_timeout=self._validate_positive_float(
                data.get('receive_timeout', defaults.receive_timeout), 'receive_timeout', defaults.receive_timeout
            ),
        )

    def load_all(self) -> DiscoveryConfig:
        """Load every configuration file into a DiscoveryConfig bundle."""
        config = DiscoveryConfig(
            scan=self.load_scan_config(),
            sweep=self.load_sweep_config(),
            mdns=self.load_mdns_config(),
            ssdp=self.load_ssdp_config(),
        )
        self._check_sweep_fits(config)
        return config

    def _check_sweep_fits(self, config: DiscoveryConfig) -> None:
        if not config.scan.enable_sweep:
            return
        estimate = config.sweep.estimated_duration()
        if estimate > config.scan.duration:
            self.logger.warning(
                f"Subnet sweep may need {estimate:.0f}s but the scan window is {config.scan.duration:.0f}s; "
                f"raise batch_size or duration, or lower the probe timeouts"
            )

    def _validate_positive_int(self, value: Any, field_name: str, default: int) -> int:
        """
        Validate that a value is a positive integer.

        Args:
            value: Value to validate
            field_name: Name of the field for error messages
            default: Default value to use if validation fails

        Returns:
            Validated integer value or default
        """
        if isinstance(value, bool):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be an integer. Using default: {default}")
            return default
        try:
            int_value = int(value)
            if int_value <= 0:
                self.logger.warning(f"Invalid {field_name}: {value}. Must be positive. Using default: {default}")
                return default
            return int_value
        except (ValueError, TypeError):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be an integer. Using default: {default}")
            return default

    def _validate_positive_float(self, value: Any, field_name: str, default: float) -> float:
        if isinstance(value, bool):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be a number. Using default: {default}")
            return default
        try:
            float_value = float(value)
            if float_value <= 0:
                self.logger.warning(f"Invalid {field_name}: {value}. Must be positive. Using default: {default}")
                return default
            return float_value
        except (ValueError, TypeError):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be a number. Using default: {default}")
            return default

    def _validate_bool(self, value: Any, field_name: str, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        self.logger.warning(f"Invalid {field_name}: {value}. Must be true or false. Using default: {default}")
        return default

    def _validate_icmp_method(self, method: str) -> str:
        """
        Validate ICMP probe method.

        Args:
            method: Method to validate

        Returns:
            Validated method or default
        """
        if method not in self.VALID_ICMP_METHODS:
            self.logger.warning(
                f"Invalid ICMP method: {method}. Must be one of {self.VALID_ICMP_METHODS}. Using default: ping"
            )
            return "ping"
        return method

    def _validate_ports(self, ports: Any, default: List[int]) -> List[int]:
        """
        Validate the sweep port list.

        Args:
            ports: Ports to validate

        Returns:
            Validated port list (order preserved) or default
        """
        if not isinstance(ports, list):
            self.logger.warning(f"Invalid ports: {ports}. Must be a list. Using default: {default}")
            return list(default)

        valid_ports = []
        for port in ports:
            if isinstance(port, int) and not isinstance(port, bool) and 0 < port <= 65535:
                if port not in valid_ports:
                    valid_ports.append(port)
            else:
                self.logger.warning(f"Invalid port: {port}. Skipping.")

        if not valid_ports:
            self.logger.warning(f"No valid ports found. Using default: {default}")
            return list(default)

        return valid_ports

    def create_default_configs(self) -> None:
        """
        Create default configuration files if they don't exist.
        """
        defaults = DiscoveryConfig()
        self._write_default("scan_config.yml", "scan", asdict(defaults.scan))
        self._write_default("sweep_config.yml", "sweep", asdict(defaults.sweep))
        self._write_default("mdns_config.yml", "mdns", asdict(defaults.mdns))
        self._write_default("ssdp_config.yml", "ssdp", asdict(defaults.ssdp))

    def _write_default(self, config_file: str, section: str, values: Dict[str, Any]) -> None:
        config_path = self.config_dir / config_file
        if config_path.exists():
            return

        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(config_path, 'w', encoding='utf-8') as f:
                yaml.dump({section: values}, f, default_flow_style=False, indent=2)
            self.logger.info(f"Created default {section.upper()} config at {config_path}")
        except OSError as e:
            self.logger.error(f"Failed to create default {section.upper()} config: {e}")
