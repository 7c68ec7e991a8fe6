"""
Scan lifecycle controller for the LAN discovery engine.

This module provides the ScanController class which owns the
idle -> scanning -> idle state machine, starts the three discovery sources
against a shared registry, enforces the scan window with a single deadline
timer and tears every source down when the window elapses or the scan is
stopped.
"""

import threading
from datetime import datetime
from typing import Callable, List, Optional

from .data_models import NetworkInfo, ScanReport, ScanSession, ScanState, SourceStatus
from .device_registry import DeviceRegistry
from .manufacturer_lookup import ManufacturerLookup, StaticManufacturerLookup
from .network_detector import NetworkDetector
from ..config.config_loader import DiscoveryConfig
from ..scanners.base_scanner import BaseDiscoverySource
from ..scanners.mdns_scanner import MDNSScanner
from ..scanners.ssdp_scanner import SSDPScanner
from ..scanners.subnet_sweep import SubnetSweepScanner
from ..utils.error_handler import (
    DiscoveryError,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    ErrorType,
)
from ..utils.logger import Logger, get_logger

StateObserver = Callable[[bool], None]
TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]

END_DEADLINE = "deadline"
END_STOPPED = "stopped"
END_SOURCE_FAILURE = "source_failure"


def _daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class ScanController:
    """
    Orchestrates one discovery scan at a time.

    The controller holds the authoritative list of source handles for the
    current session. Stopping, by deadline or explicitly, cancels all of them
    unconditionally; starting a new session first cancels anything left over
    from the previous one. Observers of the scanning flag are notified once
    per transition.
    """

    def __init__(
        self,
        config: Optional[DiscoveryConfig] = None,
        registry: Optional[DeviceRegistry] = None,
        sources: Optional[List[BaseDiscoverySource]] = None,
        network_detector: Optional[NetworkDetector] = None,
        manufacturer_lookup: Optional[ManufacturerLookup] = None,
        logger: Optional[Logger] = None,
        error_handler: Optional[ErrorHandler] = None,
        timer_factory: TimerFactory = _daemon_timer,
    ):
        """
        Initialize the scan controller.

        Args:
            config: Configuration bundle (defaults when omitted)
            registry: Shared device registry
            sources: Discovery sources; built from the configuration when omitted
            network_detector: Local address detection
            manufacturer_lookup: Vendor lookup passed to the mDNS source
            logger: Logger instance
            error_handler: Shared error handler
            timer_factory: Creates the deadline timer, replaceable for testing
        """
        self.config = config or DiscoveryConfig()
        self.logger = logger or get_logger("ScanController")
        self.error_handler = error_handler or ErrorHandler(self.logger)
        self.registry = registry or DeviceRegistry(self.logger)
        self.network_detector = network_detector or NetworkDetector(
            self.config.scan.interface_address, self.logger
        )
        self.manufacturer_lookup = manufacturer_lookup or StaticManufacturerLookup()
        self.sources = sources if sources is not None else self._build_sources()
        for source in self.sources:
            source.failure_listener = self._on_source_failure

        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._state = ScanState.IDLE
        self._session: Optional[ScanSession] = None
        self._network_info = NetworkInfo()
        self._active_sources: List[BaseDiscoverySource] = []
        self._deadline: Optional[threading.Timer] = None
        self._launch_lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()
        self._state_observers: List[StateObserver] = []

    def _build_sources(self) -> List[BaseDiscoverySource]:
        sources: List[BaseDiscoverySource] = []
        scan = self.config.scan
        if scan.enable_sweep:
            sources.append(SubnetSweepScanner(
                self.registry, self.config.sweep, self.logger, self.error_handler
            ))
        if scan.enable_mdns:
            sources.append(MDNSScanner(
                self.registry,
                self.config.mdns,
                self.logger,
                self.error_handler,
                manufacturer_lookup=self.manufacturer_lookup,
            ))
        if scan.enable_ssdp:
            sources.append(SSDPScanner(
                self.registry, self.config.ssdp, self.logger, self.error_handler
            ))
        return sources

    @property
    def state(self) -> ScanState:
        with self._lock:
            return self._state

    @property
    def is_scanning(self) -> bool:
        return self.state is ScanState.SCANNING

    @property
    def session(self) -> Optional[ScanSession]:
        with self._lock:
            return self._session

    @property
    def devices(self):
        return self.registry.devices

    def subscribe_state(self, observer: StateObserver) -> Callable[[], None]:
        """
        Register an observer of the scanning flag.

        Returns:
            Callable that removes the observer again
        """
        with self._lock:
            self._state_observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._state_observers:
                    self._state_observers.remove(observer)

        return unsubscribe

    def start_scan(self, duration: Optional[float] = None) -> bool:
        """
        Start a scan unless one is already running.

        Args:
            duration: Scan window in seconds (configured duration when omitted)

        Returns:
            bool: True if a new session was started, False if rejected
        """
        with self._lock:
            if self._state is ScanState.SCANNING:
                self.logger.debug("Scan already in progress. Ignoring new scan request.")
                return False

            duration = duration if duration is not None else self.config.scan.duration
            if duration <= 0:
                self.logger.warning(f"Invalid scan duration {duration}, using {self.config.scan.duration}")
                duration = self.config.scan.duration
            if self.config.scan.enable_sweep and self.config.sweep.estimated_duration() > duration:
                self.logger.warning(
                    f"Subnet sweep may not finish within {duration:.0f}s; unprobed hosts will be missing"
                )

            # Anything left over from a previous session is cancelled first
            self._cancel_sources(self._active_sources)
            self._active_sources = []

            self.registry.clear()
            self.error_handler.reset_statistics()
            session = ScanSession(duration=duration)
            self._session = session
            self._state = ScanState.SCANNING
            self._idle.clear()
            self.registry.mark_scanning(True)

            self.logger.section("LAN DISCOVERY SCAN")
            self.logger.info(f"Starting scan for {duration:.0f} seconds", session=session.session_id[:8])

            self._network_info = self._detect_network()
            self._active_sources = list(self.sources)
            sources = list(self._active_sources)
            network_info = self._network_info
            self._deadline = self._timer_factory(duration, lambda: self._on_deadline(session.session_id))
            self._deadline.start()
            observers = list(self._state_observers)

        self._notify_state(observers, True)

        # One session launches its sources at a time
        with self._launch_lock:
            for source in sources:
                if not self._is_current(session):
                    break
                self._start_source(source, session, network_info)
        return True

    def _is_current(self, session: ScanSession) -> bool:
        with self._lock:
            return self._session is session and self._state is ScanState.SCANNING

    def _detect_network(self) -> NetworkInfo:
        try:
            network_info = self.network_detector.get_network_info(self.config.sweep.skip_gateway)
        except DiscoveryError as e:
            self.error_handler.handle_error(
                e,
                ErrorContext(
                    error_type=ErrorType.CONFIGURATION_FAILURE,
                    severity=ErrorSeverity.MEDIUM,
                    operation="detect_network",
                    component="scan_controller",
                ),
            )
            self.logger.warning("Local subnet unknown, subnet sweep disabled for this scan")
            return NetworkInfo()

        self.logger.network_info(network_info.prefix, network_info.host_ip, network_info.excluded_addresses)
        return network_info

    def _start_source(self, source: BaseDiscoverySource, session: ScanSession, network_info: NetworkInfo) -> None:
        try:
            source.start(network_info)
        except Exception as e:
            self.error_handler.handle_error(
                e,
                ErrorContext(
                    error_type=ErrorType.SOURCE_FAILURE,
                    severity=ErrorSeverity.HIGH,
                    operation="start",
                    component=f"{source.name}_source",
                ),
            )
            self._on_source_failure(source, e)

        if not self._is_current(session):
            # The session ended while this source was starting
            self.logger.debug(f"{source.name} source started after its session ended, stopping it")
            self._cancel_sources([source])

    def stop_scan(self, reason: str = END_STOPPED) -> bool:
        """
        End the current scan, cancelling every source.

        Cancelling is idempotent: calling this while idle is a no-op.

        Args:
            reason: Recorded as the session's end reason

        Returns:
            bool: True if a running scan was stopped
        """
        with self._lock:
            if self._state is not ScanState.SCANNING:
                return False

            if self._deadline is not None:
                self._deadline.cancel()
                self._deadline = None
            sources, self._active_sources = self._active_sources, []
            self._cancel_sources(sources)

            self._state = ScanState.IDLE
            self.registry.mark_scanning(False)
            session = self._session
            if session is not None:
                session.ended_at = datetime.now()
                session.end_reason = reason
            observers = list(self._state_observers)
            self._idle.set()

        self._notify_state(observers, False)
        self.logger.success(
            f"Scan finished ({reason}): {len(self.registry)} devices",
            elapsed=f"{session.elapsed:.1f}s" if session else "-",
        )
        return True

    def _cancel_sources(self, sources: List[BaseDiscoverySource]) -> None:
        for source in sources:
            try:
                source.stop()
            except Exception as e:
                self.error_handler.handle_error(
                    e,
                    ErrorContext(
                        error_type=ErrorType.SOURCE_FAILURE,
                        severity=ErrorSeverity.LOW,
                        operation="stop",
                        component=f"{source.name}_source",
                    ),
                )

    def _on_deadline(self, session_id: str) -> None:
        with self._lock:
            if self._session is None or self._session.session_id != session_id:
                # Timer of an earlier session
                return
        self.logger.info("Scan window elapsed")
        self.stop_scan(END_DEADLINE)

    def _on_source_failure(self, source: BaseDiscoverySource, error: Exception) -> None:
        if not self.config.scan.strict_source_failures:
            return
        self.logger.warning(f"{source.name} source failed, ending scan early (strict mode)")
        self.stop_scan(END_SOURCE_FAILURE)

    def _notify_state(self, observers: List[StateObserver], scanning: bool) -> None:
        for observer in observers:
            try:
                observer(scanning)
            except Exception as e:
                self.logger.error("Scan state observer failed", exception=e)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the scan is idle.

        Returns:
            bool: True if the scan ended within ``timeout``
        """
        return self._idle.wait(timeout)

    def report(self) -> ScanReport:
        """
        Build a report of the current or last session.

        Raises:
            DiscoveryError: If no scan was ever started
        """
        with self._lock:
            if self._session is None:
                raise DiscoveryError("No scan has been started")
            session = self._session
            network_info = self._network_info
            sources = list(self.sources)

        return ScanReport(
            session=session,
            network_info=network_info,
            source_reports=[source.report() for source in sources],
            devices=self.registry.devices,
            error_statistics=self.error_handler.get_error_summary(),
        )

    def failed_sources(self) -> List[BaseDiscoverySource]:
        return [source for source in self.sources if source.status is SourceStatus.FAILED]
