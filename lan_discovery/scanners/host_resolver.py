"""
Fallback resolution of advertised services to a host target.

Used when the primary zeroconf lookup yields no usable address. The request
is keyed by the (name, type, domain) triple and answers through an explicit
one-shot result channel.
"""

import socket
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from zeroconf import ServiceInfo, Zeroconf

from .probes import ProbeCompletion
from ..utils.error_handler import (
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    ErrorType,
    ResolutionError,
)


@dataclass(frozen=True)
class ResolveRequest:
    """
    A service instance to resolve.

    Attributes:
        name: Instance name, e.g. ``Printer1``
        service_type: Service type, e.g. ``_ipp._tcp``
        domain: Browse domain, e.g. ``local``
    """
    name: str
    service_type: str
    domain: str

    @property
    def type_fqdn(self) -> str:
        return f"{self.service_type}.{self.domain}."

    @property
    def instance_fqdn(self) -> str:
        return f"{self.name}.{self.type_fqdn}"


@dataclass(frozen=True)
class ResolvedHost:
    """Host target of a resolved service: numeric address when available, else the host name."""
    host: str
    port: int


ResultCallback = Callable[[Optional[ResolvedHost]], None]


class HostTargetResolver:
    """
    Low-level service resolution through SRV lookup and the system resolver.

    Sends a direct SRV/TXT/address query for the instance, takes the SRV
    target host and port, and maps the host name to a numeric address with
    ``getaddrinfo``. When that mapping fails the host name itself is
    reported.
    """

    def __init__(
        self,
        logger=None,
        error_handler: Optional[ErrorHandler] = None,
        service_info_factory: Callable[..., Any] = ServiceInfo,
        address_resolver: Callable[..., Any] = socket.getaddrinfo,
    ):
        self.logger = logger
        self.error_handler = error_handler
        self._service_info_factory = service_info_factory
        self._address_resolver = address_resolver

    def resolve(
        self,
        request: ResolveRequest,
        zeroconf: Zeroconf,
        on_result: Optional[ResultCallback] = None,
        timeout: float = 5.0,
    ) -> ProbeCompletion:
        """
        Resolve ``request`` and deliver the result exactly once.

        Args:
            request: Service instance to resolve
            zeroconf: Open zeroconf instance used to send the query
            on_result: Receives a ResolvedHost, or None on failure or timeout
            timeout: Seconds before the request completes with None

        Returns:
            ProbeCompletion holding the result once delivered
        """
        completion = ProbeCompletion(on_result)

        def on_timeout() -> None:
            if completion.complete(None):
                self._handle_failure(
                    request,
                    TimeoutError(f"No answer for {request.instance_fqdn} within {timeout}s"),
                    ErrorType.TIMEOUT_ERROR,
                )

        timer = threading.Timer(timeout, on_timeout)
        timer.daemon = True
        timer.start()

        try:
            info = self._service_info_factory(request.type_fqdn, request.instance_fqdn)
            if not info.request(zeroconf, int(timeout * 1000)) or not info.server or not info.port:
                raise ResolutionError(f"No host target for {request.instance_fqdn}")
            completion.complete(ResolvedHost(self._numeric_host(info.server), info.port))
        except Exception as e:
            if completion.complete(None):
                self._handle_failure(request, e)
        finally:
            timer.cancel()

        return completion

    def _numeric_host(self, server: str) -> str:
        host = server.rstrip(".")
        try:
            entries = self._address_resolver(host, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except (OSError, UnicodeError):
            return host
        for entry in entries:
            sockaddr = entry[4]
            if sockaddr:
                return sockaddr[0]
        return host

    def _handle_failure(
        self,
        request: ResolveRequest,
        error: Exception,
        error_type: ErrorType = ErrorType.RESOLUTION_FAILURE,
    ) -> None:
        if self.error_handler is None:
            if self.logger:
                self.logger.debug(f"Fallback resolution failed for {request.name}: {error}")
            return
        self.error_handler.handle_error(
            error,
            ErrorContext(
                error_type=error_type,
                severity=ErrorSeverity.LOW,
                operation="fallback_resolve",
                component="host_resolver",
                additional_info={"service": request.instance_fqdn},
            ),
        )
