"""
Base discovery source interface for the LAN discovery engine.

This module defines the abstract base class that every discovery source
(subnet sweep, mDNS, SSDP) implements, giving the scan controller a single
way to start, cancel and report on them.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.data_models import Device, DiscoverySource, NetworkInfo, SourceStatus
from ..core.device_registry import DeviceRegistry
from ..utils.error_handler import ErrorContext, ErrorHandler, ErrorSeverity, ErrorType


@dataclass
class SourceReport:
    """
    Summary of one discovery source for a scan session.

    Attributes:
        source: Discovery source this report belongs to
        status: Final (or current) status of the source
        devices_found: Number of devices this source inserted into the registry
        duration: Seconds between start and stop
        errors: Error messages recorded by the source
        metadata: Additional source-specific details
    """
    source: DiscoverySource
    status: SourceStatus
    devices_found: int = 0
    duration: float = 0.0
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


FailureListener = Callable[["BaseDiscoverySource", Exception], None]


class BaseDiscoverySource(ABC):
    """
    Abstract base class for all discovery sources.

    A source is started once per scan session with the local network
    information, works in the background, inserts devices into the shared
    registry and is cancelled by ``stop()``. ``stop()`` must be idempotent.
    """

    source_type: DiscoverySource

    def __init__(
        self,
        registry: DeviceRegistry,
        logger=None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """
        Initialize the base discovery source.

        Args:
            registry: Registry receiving discovered devices
            logger: Logger instance for outputting progress and errors
            error_handler: Error handler for bookkeeping of failures
        """
        self.registry = registry
        self.logger = logger
        self.error_handler = error_handler or ErrorHandler(logger)
        self.failure_listener: Optional[FailureListener] = None
        self.status = SourceStatus.NOT_STARTED
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self._state_lock = threading.Lock()
        self._devices_found = 0
        self._errors: List[str] = []
        self._metadata: Dict[str, Any] = {}

    @abstractmethod
    def start(self, network: NetworkInfo) -> None:
        """
        Begin discovery in the background and return immediately.

        Args:
            network: Local network information for this session

        A source that cannot open its session or socket does not raise: it
        records a SourceStartError, marks itself FAILED and notifies the
        failure listener.
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Cancel all outstanding work and release network resources."""
        pass

    @property
    def name(self) -> str:
        return self.source_type.value

    @property
    def is_running(self) -> bool:
        return self.status == SourceStatus.RUNNING

    def reset(self) -> None:
        """Forget the previous session's bookkeeping."""
        with self._state_lock:
            self.status = SourceStatus.NOT_STARTED
            self.start_time = None
            self.end_time = None
            self._devices_found = 0
            self._errors = []
            self._metadata = {}

    def report(self) -> SourceReport:
        with self._state_lock:
            return SourceReport(
                source=self.source_type,
                status=self.status,
                devices_found=self._devices_found,
                duration=self._duration(),
                errors=list(self._errors),
                metadata=dict(self._metadata),
            )

    def _insert(self, device: Device) -> Tuple[Device, bool]:
        """Insert into the registry, counting new devices for the report."""
        stored, inserted = self.registry.insert_or_ignore(device)
        if inserted:
            with self._state_lock:
                self._devices_found += 1
        return stored, inserted

    def _mark_started(self) -> None:
        with self._state_lock:
            self.start_time = datetime.now()
            self.end_time = None
            self.status = SourceStatus.RUNNING

    def _mark_finished(self, status: SourceStatus) -> bool:
        """
        Move to a terminal status unless one was already reached.

        Returns:
            bool: True if the status changed
        """
        with self._state_lock:
            if self.status not in (SourceStatus.RUNNING, SourceStatus.NOT_STARTED):
                return False
            self.status = status
            self.end_time = datetime.now()
            return True

    def _set_metadata(self, key: str, value: Any) -> None:
        with self._state_lock:
            self._metadata[key] = value

    def _duration(self) -> float:
        if not self.start_time:
            return 0.0
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    def _record_error(
        self,
        error: Exception,
        error_type: ErrorType,
        operation: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        **additional_info,
    ) -> None:
        with self._state_lock:
            self._errors.append(f"{operation}: {error}")
        self.error_handler.handle_error(
            error,
            ErrorContext(
                error_type=error_type,
                severity=severity,
                operation=operation,
                component=f"{self.name}_source",
                additional_info=additional_info,
            ),
        )

    def _fail(self, error: Exception, operation: str, disable: bool = True, **additional_info) -> None:
        """
        Report a source-level failure to the controller.

        Args:
            error: The failure
            operation: Operation that failed
            disable: Mark the whole source FAILED for this session; False when
                only one of its sessions failed
        """
        self._record_error(error, ErrorType.SOURCE_FAILURE, operation, ErrorSeverity.HIGH, **additional_info)
        if disable:
            self._mark_finished(SourceStatus.FAILED)
        if self.failure_listener is not None:
            self.failure_listener(self, error)

    def _log_info(self, message: str) -> None:
        """Log an info message if logger is available."""
        if self.logger:
            self.logger.info(message)

    def _log_warning(self, message: str) -> None:
        """Log a warning message if logger is available."""
        if self.logger:
            self.logger.warning(message)

    def _log_error(self, message: str) -> None:
        """Log an error message if logger is available."""
        if self.logger:
            self.logger.error(message)

    def _log_debug(self, message: str) -> None:
        """Log a debug message if logger is available."""
        if self.logger:
            self.logger.debug(message)
