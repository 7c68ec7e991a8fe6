"""
Error taxonomy and centralized handling for local network discovery.

Discovery is best effort: a failed probe, an unresolved service or a source
that cannot open its socket never aborts the scan. Components catch their own
failures, hand them to an ErrorHandler for logging and bookkeeping, and carry
on with "no result". The handler never asks for a retry; nothing is retried
within a scan session.
"""

import errno
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import threading

from .logger import Logger, get_logger


class ErrorType(Enum):
    """Enumeration for different types of errors."""
    PROBE_FAILURE = "probe_failure"
    RESOLUTION_FAILURE = "resolution_failure"
    SOURCE_FAILURE = "source_failure"
    CONFIGURATION_FAILURE = "configuration_failure"
    PERMISSION_ERROR = "permission_error"
    TIMEOUT_ERROR = "timeout_error"


class ErrorSeverity(Enum):
    """Enumeration for error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """
    Context information for error handling.

    Attributes:
        error_type: Type of error that occurred
        severity: Severity level of the error
        operation: Operation that was being performed when error occurred
        component: Component/module where error occurred
        additional_info: Additional context information
    """
    error_type: ErrorType
    severity: ErrorSeverity
    operation: str
    component: str
    additional_info: Dict[str, Any] = field(default_factory=dict)


class DiscoveryError(Exception):
    """Base exception class for the discovery engine."""

    def __init__(self, message: str, error_context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.error_context = error_context


class ProbeError(DiscoveryError):
    """A single host/port probe could not be performed."""
    pass


class ResolutionError(DiscoveryError):
    """A discovered service could not be resolved to an address."""
    pass


class SourceStartError(DiscoveryError):
    """A discovery source could not open its browsing session or socket."""
    pass


class ConfigurationError(DiscoveryError):
    """Exception for configuration-related errors."""
    pass


class RegistryError(DiscoveryError):
    """Invalid operation on the device registry."""
    pass


class ErrorHandler:
    """
    Centralized error bookkeeping.

    Logs each error at a level derived from its severity, keeps per-type
    counters for the scan report and remembers the most recent messages.
    Safe to call from any worker thread.
    """

    MAX_RECENT_ERRORS = 50

    def __init__(self, logger: Optional[Logger] = None):
        """
        Initialize the ErrorHandler.

        Args:
            logger: Logger instance for error reporting
        """
        self.logger = logger or get_logger(__name__)
        self.error_statistics: Dict[ErrorType, int] = {
            error_type: 0 for error_type in ErrorType
        }
        self.recent_errors: list = []
        self._lock = threading.Lock()

    def handle_error(self, error: Exception, context: ErrorContext) -> bool:
        """
        Record and log an error.

        Args:
            error: The exception that occurred
            context: Error context information

        Returns:
            bool: Always False, the failed operation is not retried
        """
        if context.error_type == ErrorType.PROBE_FAILURE and self.is_permission_error(error):
            context.error_type = ErrorType.PERMISSION_ERROR
            context.severity = ErrorSeverity.HIGH

        with self._lock:
            self.error_statistics[context.error_type] += 1
            self.recent_errors.append(
                f"{context.component}.{context.operation}: {error}"
            )
            del self.recent_errors[:-self.MAX_RECENT_ERRORS]

        self._log_error(error, context)

        if context.error_type == ErrorType.PERMISSION_ERROR:
            self._suggest_permission_solutions(context)
        elif context.error_type == ErrorType.CONFIGURATION_FAILURE:
            self._suggest_configuration_fixes(context)

        return False

    def _log_error(self, error: Exception, context: ErrorContext) -> None:
        """
        Log error information with appropriate detail level.

        Args:
            error: The exception that occurred
            context: Error context information
        """
        error_msg = f"Error in {context.component}.{context.operation}: {str(error)}"

        if context.severity == ErrorSeverity.CRITICAL:
            self.logger.error(error_msg, exception=error)
        elif context.severity == ErrorSeverity.HIGH:
            self.logger.error(error_msg)
        elif context.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(error_msg)
        else:
            self.logger.debug(error_msg)

    @staticmethod
    def is_permission_error(error: Exception) -> bool:
        if isinstance(error, PermissionError):
            return True
        return isinstance(error, OSError) and error.errno in (errno.EPERM, errno.EACCES)

    def _suggest_permission_solutions(self, context: ErrorContext) -> None:
        self.logger.info("Permission error solutions:")
        if "icmp" in context.operation.lower():
            self.logger.info("  • Use icmp_method: ping in sweep_config.yml")
            self.logger.info("  • Or run with elevated privileges for raw sockets")
        else:
            self.logger.info("  • Run with elevated privileges (sudo)")
            self.logger.info("  • Check that multicast traffic is allowed by the firewall")

    def _suggest_configuration_fixes(self, context: ErrorContext) -> None:
        config_file = context.additional_info.get("config_file", "configuration")
        self.logger.info(f"Configuration error solutions for {config_file}:")
        self.logger.info("  • Check YAML syntax and indentation")
        self.logger.info("  • Ensure configuration values are valid")
        self.logger.info("  • Use --config-dir to point at a valid configuration directory")

    def get_error_summary(self) -> Dict[str, Any]:
        """
        Get a summary of all errors handled so far.

        Returns:
            Dict containing error statistics and recent messages
        """
        with self._lock:
            by_type = {
                error_type.value: count
                for error_type, count in self.error_statistics.items()
                if count > 0
            }
            return {
                "total_errors": sum(self.error_statistics.values()),
                "errors_by_type": by_type,
                "recent_errors": list(self.recent_errors),
            }

    def reset_statistics(self) -> None:
        with self._lock:
            for error_type in ErrorType:
                self.error_statistics[error_type] = 0
            self.recent_errors.clear()
