"""
Core data models and enums for local network discovery.

This module defines the data structures shared by the discovery sources, the
device registry and the scan controller: device identities and records,
probe results, scan session state and the final scan report.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple


class DiscoverySource(Enum):
    """The three independent ways a device can be discovered."""
    SWEEP = "sweep"
    MDNS = "mdns"
    SSDP = "ssdp"


class ProbeKind(Enum):
    """Probe methods used by the subnet sweep."""
    TCP = "tcp"
    ICMP = "icmp"


class ScanState(Enum):
    """States of the scan lifecycle."""
    IDLE = "idle"
    SCANNING = "scanning"


class SourceStatus(Enum):
    """Enumeration of possible discovery source statuses."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    DISABLED = "disabled"


class DeviceCategory(Enum):
    """Display categories assigned by the device classifier."""
    PRINTER = "Printer"
    LIGHTING = "Lighting"
    COMPUTER = "Computer"
    MEDIA = "Media"
    STORAGE = "Storage"
    IOT = "IoT"
    NETWORK = "Network"
    UNKNOWN = "Unknown"


class RegistryEventKind(Enum):
    """Kinds of notifications published by the device registry."""
    ADDED = "added"
    UPDATED = "updated"
    CLEARED = "cleared"


@dataclass(frozen=True)
class DeviceIdentity:
    """
    Source-specific identity of a discovered device.

    Two identities are equal when they come from the same source and carry
    the same key. The key is:
      - mDNS: (name, domain, service_type)
      - SSDP: (unique identifier,) falling back to the location URL
      - sweep: (address,)
    """
    source: DiscoverySource
    key: Tuple[str, ...]

    @classmethod
    def mdns(cls, name: str, domain: str, service_type: str) -> "DeviceIdentity":
        return cls(DiscoverySource.MDNS, (name, domain, service_type))

    @classmethod
    def ssdp(cls, identity_key: str) -> "DeviceIdentity":
        return cls(DiscoverySource.SSDP, (identity_key,))

    @classmethod
    def sweep(cls, address: str) -> "DeviceIdentity":
        return cls(DiscoverySource.SWEEP, (address,))

    @property
    def raw_name(self) -> str:
        """The raw source identity used when no friendly name is known."""
        return self.key[0]


DeviceObserver = Callable[["Device", str, Any], None]


class Device:
    """
    A discovered device.

    Identity fields are fixed at construction. Resolved fields are filled in
    later by asynchronous resolution steps; each setter is thread-safe and
    notifies the device's observers with ``(device, field_name, value)``.
    Observers are invoked outside the device lock.
    """

    OBSERVABLE_FIELDS = (
        "address",
        "port",
        "friendly_name",
        "model",
        "metadata",
        "manufacturer",
        "open_ports",
        "probe_methods",
    )

    def __init__(self, identity: DeviceIdentity):
        self.identity = identity
        self.device_id = uuid.uuid4().hex
        self.discovered_at = datetime.now()
        self._lock = threading.Lock()
        self._observers: List[DeviceObserver] = []
        self._address: Optional[str] = None
        self._port: Optional[int] = None
        self._friendly_name: Optional[str] = None
        self._model: Optional[str] = None
        self._metadata: Dict[str, str] = {}
        self._manufacturer: Optional[str] = None
        self._open_ports: List[int] = []
        self._probe_methods: Set[ProbeKind] = set()

    # Factories, one per discovery source

    @classmethod
    def from_mdns(cls, name: str, domain: str, service_type: str) -> "Device":
        return cls(DeviceIdentity.mdns(name, domain, service_type))

    @classmethod
    def from_ssdp(
        cls,
        identity_key: str,
        server: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> "Device":
        device = cls(DeviceIdentity.ssdp(identity_key))
        device._friendly_name = server
        device._address = host
        device._port = port
        device._metadata = dict(headers or {})
        return device

    @classmethod
    def from_sweep(cls, result: "HostProbeResult") -> "Device":
        device = cls(DeviceIdentity.sweep(result.address))
        device._address = result.address
        device._port = result.open_port
        device._open_ports = list(result.open_ports)
        device._probe_methods = set(result.probe_methods)
        return device

    # Identity accessors

    @property
    def source(self) -> DiscoverySource:
        return self.identity.source

    @property
    def service_name(self) -> str:
        return self.identity.raw_name

    @property
    def service_domain(self) -> Optional[str]:
        if self.source is DiscoverySource.MDNS:
            return self.identity.key[1]
        return self.source.value

    @property
    def service_type(self) -> Optional[str]:
        if self.source is DiscoverySource.MDNS:
            return self.identity.key[2]
        return self.source.value

    @property
    def identifier(self) -> str:
        """Display identifier: friendly name if known, otherwise the raw identity."""
        return self.friendly_name or self.identity.raw_name

    # Observation

    def subscribe(self, observer: DeviceObserver) -> Callable[[], None]:
        """
        Register an observer for resolved-field updates.

        Returns:
            Callable that removes the observer again
        """
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def _set(self, name: str, value: Any) -> None:
        with self._lock:
            setattr(self, f"_{name}", value)
            observers = list(self._observers)
        for observer in observers:
            observer(self, name, value)

    def _get(self, name: str) -> Any:
        with self._lock:
            return getattr(self, f"_{name}")

    # Resolved fields

    @property
    def address(self) -> Optional[str]:
        return self._get("address")

    @address.setter
    def address(self, value: Optional[str]) -> None:
        self._set("address", value)

    @property
    def port(self) -> Optional[int]:
        return self._get("port")

    @port.setter
    def port(self, value: Optional[int]) -> None:
        self._set("port", value)

    @property
    def friendly_name(self) -> Optional[str]:
        return self._get("friendly_name")

    @friendly_name.setter
    def friendly_name(self, value: Optional[str]) -> None:
        self._set("friendly_name", value)

    @property
    def model(self) -> Optional[str]:
        return self._get("model")

    @model.setter
    def model(self, value: Optional[str]) -> None:
        self._set("model", value)

    @property
    def metadata(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._metadata)

    @metadata.setter
    def metadata(self, value: Dict[str, str]) -> None:
        self._set("metadata", dict(value))

    @property
    def manufacturer(self) -> Optional[str]:
        return self._get("manufacturer")

    @manufacturer.setter
    def manufacturer(self, value: Optional[str]) -> None:
        self._set("manufacturer", value)

    @property
    def open_ports(self) -> List[int]:
        with self._lock:
            return list(self._open_ports)

    @property
    def probe_methods(self) -> Set[ProbeKind]:
        with self._lock:
            return set(self._probe_methods)

    @property
    def is_resolved(self) -> bool:
        return self.address is not None

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "identifier": self._friendly_name or self.identity.raw_name,
                "source": self.identity.source.value,
                "identity": list(self.identity.key),
                "address": self._address,
                "port": self._port,
                "friendly_name": self._friendly_name,
                "model": self._model,
                "manufacturer": self._manufacturer,
                "metadata": dict(self._metadata),
                "open_ports": list(self._open_ports),
                "probe_methods": sorted(kind.value for kind in self._probe_methods),
                "discovered_at": self.discovered_at.isoformat(),
            }

    def __repr__(self) -> str:
        return f"Device({self.identity.source.value}:{self.identifier!r}, address={self.address!r})"


@dataclass
class RegistryEvent:
    """
    Notification published by the device registry.

    Attributes:
        kind: What happened
        device: Device concerned (None for CLEARED)
        field: Name of the resolved field for UPDATED events
        value: New value of the field for UPDATED events
    """
    kind: RegistryEventKind
    device: Optional[Device] = None
    field: Optional[str] = None
    value: Any = None


@dataclass
class HostProbeResult:
    """
    Outcome of probing one candidate address during the subnet sweep.

    Attributes:
        address: Probed IPv4 address
        open_ports: Ports that accepted a TCP connection, in configured order
        icmp_reply: Whether an echo reply was received
    """
    address: str
    open_ports: List[int] = field(default_factory=list)
    icmp_reply: bool = False

    @property
    def open_port(self) -> Optional[int]:
        return self.open_ports[0] if self.open_ports else None

    @property
    def probe_methods(self) -> Set[ProbeKind]:
        methods = set()
        if self.open_ports:
            methods.add(ProbeKind.TCP)
        if self.icmp_reply:
            methods.add(ProbeKind.ICMP)
        return methods

    @property
    def active(self) -> bool:
        return bool(self.open_ports) or self.icmp_reply


@dataclass
class SweepSummary:
    """
    Final summary published by the subnet sweep.

    Attributes:
        prefix: /24 prefix that was swept
        own_address: Local interface address, excluded from the sweep
        addresses_probed: Number of candidate addresses probed
        batches_completed: Number of fully drained batches
        active_hosts: Addresses found active
        duration: Sweep duration in seconds
        cancelled: True when the sweep stopped before the last batch
    """
    prefix: str
    own_address: Optional[str] = None
    addresses_probed: int = 0
    batches_completed: int = 0
    active_hosts: List[str] = field(default_factory=list)
    duration: float = 0.0
    cancelled: bool = False


@dataclass
class NetworkInfo:
    """
    Local network information used by the sweep.

    Attributes:
        host_ip: Own interface address (None when undetectable)
        prefix: /24 prefix derived from host_ip
        excluded_addresses: Addresses never reported by the sweep
    """
    host_ip: Optional[str] = None
    prefix: Optional[str] = None
    excluded_addresses: List[str] = field(default_factory=list)


@dataclass
class ScanSession:
    """
    One run of the discovery engine.

    Attributes:
        duration: Configured scan window in seconds
        session_id: Unique id, used to ignore stale deadline callbacks
        started_at: Wall clock start time
        ended_at: Wall clock end time, None while scanning
        end_reason: Why the session ended ("deadline", "stopped", "source_failure")
    """
    duration: float
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None

    @property
    def elapsed(self) -> float:
        end = self.ended_at or datetime.now()
        return (end - self.started_at).total_seconds()


@dataclass
class ScanReport:
    """
    Complete result of a discovery scan.

    Attributes:
        session: Session metadata
        network_info: Local network information
        source_reports: One report per discovery source
        devices: Snapshot of discovered devices in insertion order
        error_statistics: Summary from the ErrorHandler
    """
    session: ScanSession
    network_info: NetworkInfo
    source_reports: List[Any] = field(default_factory=list)
    devices: List[Device] = field(default_factory=list)
    error_statistics: Dict[str, Any] = field(default_factory=dict)
