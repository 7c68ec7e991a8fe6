"""
Multicast service discovery source (mDNS / DNS-SD).

Opens one zeroconf browsing session per catalog service type. Every newly
seen (name, domain, type) triple is inserted as a bare device and resolved
in a worker pool: first through ``get_service_info``, then, when that yields
no usable address, through the lower-level HostTargetResolver.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple

from zeroconf import IPVersion, ServiceBrowser, ServiceStateChange, Zeroconf

from .base_scanner import BaseDiscoverySource
from .host_resolver import HostTargetResolver, ResolvedHost, ResolveRequest
from ..config.config_loader import MDNSConfig
from ..core.data_models import Device, DiscoverySource, NetworkInfo, SourceStatus
from ..core.device_registry import DeviceRegistry
from ..core.manufacturer_lookup import ManufacturerLookup
from ..core.service_catalog import DEFAULT_DOMAIN, normalize_service_type, to_fqdn
from ..core.service_catalog import service_types as catalog_service_types
from ..utils.error_handler import ErrorHandler, ErrorSeverity, ErrorType, SourceStartError
from ..utils.network_utils import address_from_bytes

FRIENDLY_NAME_KEYS = ("fn", "n")
MODEL_KEY = "md"


def split_service_name(name: str, service_type: str) -> Tuple[str, str, str]:
    """
    Split a fully qualified instance name into (instance, domain, type).

    Example:
        ``("Printer1._ipp._tcp.local.", "_ipp._tcp.local.")`` gives
        ``("Printer1", "local", "_ipp._tcp")``
    """
    normalized_type = normalize_service_type(service_type)
    type_labels = normalized_type.count(".") + 1
    domain_labels = [label for label in service_type.split(".") if label][type_labels:]
    domain = ".".join(domain_labels) or DEFAULT_DOMAIN

    suffix = "." + service_type.strip(".")
    trimmed = name.rstrip(".")
    if trimmed.endswith(suffix):
        instance = trimmed[:-len(suffix)]
    else:
        instance = trimmed
    return instance, domain, normalized_type


def decode_txt_records(properties: Optional[Dict[Any, Any]]) -> Dict[str, str]:
    """
    Decode TXT records into strings.

    Keys and values must be valid UTF-8; entries that fail to decode are
    dropped. Keys without a value map to an empty string.
    """
    records: Dict[str, str] = {}
    for key, value in (properties or {}).items():
        try:
            text_key = key.decode("utf-8") if isinstance(key, bytes) else str(key)
            if value is None:
                text_value = ""
            elif isinstance(value, bytes):
                text_value = value.decode("utf-8")
            else:
                text_value = str(value)
        except UnicodeDecodeError:
            continue
        records[text_key] = text_value
    return records


class MDNSScanner(BaseDiscoverySource):
    """
    Discovers devices by service advertisement.

    A browsing session that cannot be opened only disables its own service
    type; sibling sessions keep running. The failure is still reported to the
    controller, which may end the scan in strict mode.
    """

    source_type = DiscoverySource.MDNS

    def __init__(
        self,
        registry: DeviceRegistry,
        config: Optional[MDNSConfig] = None,
        logger=None,
        error_handler: Optional[ErrorHandler] = None,
        host_resolver: Optional[HostTargetResolver] = None,
        manufacturer_lookup: Optional[ManufacturerLookup] = None,
        zeroconf_factory: Callable[[], Any] = Zeroconf,
        browser_factory: Callable[..., Any] = ServiceBrowser,
    ):
        """
        Initialize the mDNS scanner.

        Args:
            registry: Registry receiving discovered services
            config: mDNS configuration
            logger: Logger instance
            error_handler: Error handler for resolution and browse failures
            host_resolver: Fallback resolver
            manufacturer_lookup: Vendor lookup for MAC-like instance names
            zeroconf_factory: Creates the zeroconf instance, replaceable for testing
            browser_factory: Creates one browser per service type
        """
        super().__init__(registry, logger, error_handler)
        self.config = config or MDNSConfig()
        self.host_resolver = host_resolver or HostTargetResolver(logger, self.error_handler)
        self.manufacturer_lookup = manufacturer_lookup
        self._zeroconf_factory = zeroconf_factory
        self._browser_factory = browser_factory
        self._lock = threading.Lock()
        self._accepting = False
        self._zeroconf = None
        self._browsers: List[Any] = []
        self._executor: Optional[ThreadPoolExecutor] = None
        self._generation = 0
        self.failed_types: List[str] = []

    @property
    def service_types(self) -> List[str]:
        if self.config.service_types:
            return list(self.config.service_types)
        return catalog_service_types(self.config.service_groups)

    def start(self, network: NetworkInfo) -> None:
        self.reset()
        self.failed_types = []

        try:
            zeroconf = self._zeroconf_factory()
        except Exception as e:
            self._log_error(f"Unable to open mDNS transport: {e}")
            self._fail(SourceStartError(f"Unable to open mDNS transport: {e}"), "open_zeroconf")
            return

        with self._lock:
            self._zeroconf = zeroconf
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.resolve_workers, thread_name_prefix="mdns-resolve"
            )
            self._accepting = True
            self._generation += 1
            generation = self._generation
        self._mark_started()

        for service_type in self.service_types:
            if not self._is_session(zeroconf, generation):
                # Stopped while the sessions were being opened
                return
            browse_type = to_fqdn(service_type)
            try:
                browser = self._browser_factory(
                    zeroconf, browse_type, handlers=[self._on_service_state_change]
                )
            except Exception as e:
                self.failed_types.append(service_type)
                self._log_warning(f"Browsing {browse_type} failed: {e}")
                self._fail(
                    SourceStartError(f"Browsing {browse_type} failed: {e}"),
                    "browse",
                    disable=False,
                    service_type=service_type,
                )
                continue
            with self._lock:
                if not self._accepting or self._generation != generation:
                    browser.cancel()
                    return
                self._browsers.append(browser)

        self._set_metadata("browsing_sessions", len(self._browsers))
        self._set_metadata("failed_types", list(self.failed_types))
        if not self._browsers and self.service_types:
            self._fail(SourceStartError("No mDNS browsing session could be opened"), "browse")
            self.stop()
            return
        self._log_info(f"Browsing {len(self._browsers)} mDNS service types")

    def stop(self) -> None:
        with self._lock:
            self._accepting = False
            browsers, self._browsers = self._browsers, []
            zeroconf, self._zeroconf = self._zeroconf, None
            executor, self._executor = self._executor, None

        for browser in browsers:
            try:
                browser.cancel()
            except Exception as e:
                self._log_debug(f"Cancelling browser failed: {e}")
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        if zeroconf is not None:
            zeroconf.close()
            self._log_debug("mDNS browsing stopped")
        self._mark_finished(SourceStatus.COMPLETED)

    @property
    def accepting(self) -> bool:
        with self._lock:
            return self._accepting

    def _is_session(self, zeroconf: Any, generation: Optional[int] = None) -> bool:
        """True while ``zeroconf`` (and ``generation``, when given) belong to the open session."""
        with self._lock:
            if not self._accepting or self._zeroconf is not zeroconf:
                return False
            return generation is None or generation == self._generation

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change is ServiceStateChange.Removed:
            self._log_debug(f"Service removed: {name}")
            return
        if state_change is not ServiceStateChange.Added or not self._is_session(zeroconf):
            return

        instance, domain, normalized_type = split_service_name(name, service_type)
        device, inserted = self._insert(Device.from_mdns(instance, domain, normalized_type))
        if not inserted:
            return

        self._log_info(f"Discovered {normalized_type} service: {instance}")
        self._annotate_manufacturer(device)

        with self._lock:
            if not self._accepting or self._executor is None or self._zeroconf is not zeroconf:
                return
            try:
                self._executor.submit(self._resolve, zeroconf, device, service_type, name, self._generation)
            except RuntimeError:
                # Executor shut down by stop()
                return

    def _annotate_manufacturer(self, device: Device) -> None:
        if self.manufacturer_lookup is None:
            return
        vendor = self.manufacturer_lookup.manufacturer_for_name(device.service_name)
        if vendor:
            device.manufacturer = vendor

    def _resolve(
        self,
        zeroconf: Zeroconf,
        device: Device,
        service_type: str,
        name: str,
        generation: int,
    ) -> None:
        """
        Primary resolution with fallback to the host target resolver.

        Work queued by an earlier session still applies what it already
        resolved to its device, but records no errors and starts no fallback.
        """
        info = None
        try:
            info = zeroconf.get_service_info(
                service_type, name, timeout=int(self.config.resolve_timeout * 1000)
            )
        except Exception as e:
            if self._is_session(zeroconf, generation):
                self._record_error(
                    e, ErrorType.RESOLUTION_FAILURE, "get_service_info", ErrorSeverity.LOW, service=name
                )

        if info is not None:
            self.apply_service_info(device, info)
            if device.address is not None:
                return

        if not self._is_session(zeroconf, generation):
            return

        self._log_debug(f"No address from primary resolution of {device.service_name}, trying fallback")
        request = ResolveRequest(device.service_name, device.service_type, device.service_domain)
        self.host_resolver.resolve(
            request,
            zeroconf,
            on_result=lambda result: self._apply_fallback(device, result),
            timeout=self.config.fallback_timeout,
        )

    def apply_service_info(self, device: Device, info: Any) -> None:
        """
        Copy address, port and TXT records of a resolved service onto ``device``.

        The address is only recorded together with a port.
        """
        records = decode_txt_records(getattr(info, "properties", None))
        if records:
            device.metadata = records
            friendly_name = next((records[k] for k in FRIENDLY_NAME_KEYS if records.get(k)), None)
            if friendly_name:
                device.friendly_name = friendly_name
            if records.get(MODEL_KEY):
                device.model = records[MODEL_KEY]

        address = self._first_address(info)
        if address is not None and info.port:
            device.address = address
            device.port = info.port
            self._log_info(f"Resolved {device.identifier} to {address}:{info.port}")

    def _first_address(self, info: Any) -> Optional[str]:
        try:
            packed_addresses = info.addresses_by_version(IPVersion.All)
        except Exception as e:
            self._log_debug(f"Reading addresses failed: {e}")
            return None
        for packed in packed_addresses:
            address = address_from_bytes(packed)
            if address is not None:
                return address
        return None

    def _apply_fallback(self, device: Device, result: Optional[ResolvedHost]) -> None:
        if result is None:
            self._log_warning(f"Could not resolve {device.identifier}, listed without address")
            return
        device.address = result.host
        device.port = result.port
        self._log_info(f"Resolved {device.identifier} to {result.host}:{result.port} (fallback)")
