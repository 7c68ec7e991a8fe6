"""
Subnet sweep discovery source.

Probes every host of the local /24 on a small fixed port set and with an
ICMP echo. Hosts are processed in fixed-size batches and a batch is fully
drained before the next one starts.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from .base_scanner import BaseDiscoverySource
from .probes import icmp_probe, tcp_probe
from ..config.config_loader import SweepConfig
from ..core.data_models import (
    Device,
    DiscoverySource,
    HostProbeResult,
    NetworkInfo,
    SourceStatus,
    SweepSummary,
)
from ..core.device_registry import DeviceRegistry
from ..utils.error_handler import ErrorHandler, ErrorSeverity, ErrorType
from ..utils.network_utils import candidate_addresses

BatchListener = Callable[[int, List[str]], None]


class SubnetSweepScanner(BaseDiscoverySource):
    """
    Active inventory of hosts on the local /24.

    A host is active when any configured port accepts a TCP connection or
    when it answers the ICMP echo. Active hosts are inserted into the
    registry as soon as their batch is drained.
    """

    source_type = DiscoverySource.SWEEP

    def __init__(
        self,
        registry: DeviceRegistry,
        config: Optional[SweepConfig] = None,
        logger=None,
        error_handler: Optional[ErrorHandler] = None,
        tcp_prober: Callable[..., bool] = tcp_probe,
        icmp_prober: Callable[..., bool] = icmp_probe,
        batch_listener: Optional[BatchListener] = None,
    ):
        """
        Initialize the subnet sweep.

        Args:
            registry: Registry receiving active hosts
            config: Sweep configuration
            logger: Logger instance
            error_handler: Error handler for probe failures
            tcp_prober: TCP probe primitive, replaceable for testing
            icmp_prober: ICMP probe primitive, replaceable for testing
            batch_listener: Called with (batch index, addresses) after each drained batch
        """
        super().__init__(registry, logger, error_handler)
        self.config = config or SweepConfig()
        self._tcp_probe = tcp_prober
        self._icmp_probe = icmp_prober
        self.batch_listener = batch_listener
        self.summary: Optional[SweepSummary] = None
        self._cancel = threading.Event()
        self._finished = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self, network: NetworkInfo) -> None:
        self.reset()
        self.summary = None
        # Per-run events; a thread left over from an earlier run keeps its own
        self._cancel = threading.Event()
        self._finished = threading.Event()

        if network.prefix is None:
            self._log_warning("Local subnet prefix unavailable, subnet sweep disabled for this scan")
            self._mark_finished(SourceStatus.DISABLED)
            self._finished.set()
            return

        self._mark_started()
        self._thread = threading.Thread(
            target=self._run, args=(network, self._cancel, self._finished), name="subnet-sweep", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._cancel.set()
        if self._mark_finished(SourceStatus.CANCELLED):
            self._log_debug("Subnet sweep cancelled")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the sweep thread has finished."""
        return self._finished.wait(timeout)

    def _run(self, network: NetworkInfo, cancel: threading.Event, finished: threading.Event) -> None:
        try:
            self.sweep(network, cancel)
        finally:
            finished.set()

    def sweep(self, network: NetworkInfo, cancel: Optional[threading.Event] = None) -> SweepSummary:
        """
        Sweep the prefix of ``network`` batch by batch.

        Args:
            network: Local network information; its excluded addresses are skipped
            cancel: Checked between batches; the current run's event when omitted

        Returns:
            SweepSummary of the sweep
        """
        cancel = cancel or self._cancel
        candidates = candidate_addresses(network.prefix, network.excluded_addresses)
        batch_size = self.config.batch_size
        batches = [candidates[i:i + batch_size] for i in range(0, len(candidates), batch_size)]

        summary = SweepSummary(prefix=network.prefix, own_address=network.host_ip)
        self._log_info(
            f"Sweeping {network.prefix}1-254 ({len(candidates)} hosts, "
            f"{len(batches)} batches of {batch_size})"
        )
        started = time.monotonic()

        with ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix="sweep") as executor:
            for index, batch in enumerate(batches):
                if cancel.is_set():
                    summary.cancelled = True
                    break

                futures = {executor.submit(self.probe_host, address): address for address in batch}
                # Barrier: the next batch starts only when every host of this one is done
                wait(futures)

                for future, address in futures.items():
                    summary.addresses_probed += 1
                    try:
                        result = future.result()
                    except Exception as e:
                        self._record_error(
                            e, ErrorType.PROBE_FAILURE, "probe_host", ErrorSeverity.LOW, address=address
                        )
                        continue
                    if result.active and not cancel.is_set():
                        summary.active_hosts.append(address)
                        self._insert(Device.from_sweep(result))
                        methods = ", ".join(sorted(kind.value for kind in result.probe_methods))
                        self._log_info(f"Active host {address} via {methods}")

                summary.batches_completed += 1
                if self.batch_listener is not None:
                    self.batch_listener(index, list(batch))

        summary.duration = time.monotonic() - started
        if cancel is not self._cancel:
            return summary

        self.summary = summary
        self._set_metadata("prefix", summary.prefix)
        self._set_metadata("batches_completed", summary.batches_completed)
        self._set_metadata("active_hosts", len(summary.active_hosts))
        self._mark_finished(SourceStatus.CANCELLED if summary.cancelled else SourceStatus.COMPLETED)

        self._log_info(
            f"Subnet sweep finished: {len(summary.active_hosts)} active hosts in "
            f"{summary.duration:.2f} seconds"
        )
        return summary

    def probe_host(self, address: str) -> HostProbeResult:
        """
        Probe one host: all configured ports concurrently, then ICMP.

        Args:
            address: Candidate IPv4 address

        Returns:
            HostProbeResult with open ports in configured order
        """
        ports = self.config.ports
        with ThreadPoolExecutor(max_workers=max(1, len(ports)), thread_name_prefix=f"probe-{address}") as executor:
            outcomes = list(executor.map(self._probe_port, [address] * len(ports), ports))
        open_ports = [port for port, is_open in zip(ports, outcomes) if is_open]

        icmp_reply = False
        if self.config.icmp_enabled:
            icmp_reply = bool(self._icmp_probe(
                address,
                timeout=self.config.icmp_timeout,
                method=self.config.icmp_method,
                error_handler=self.error_handler,
            ))

        if open_ports or icmp_reply:
            self._log_debug(f"{address}: open ports {open_ports}, icmp reply {icmp_reply}")
        return HostProbeResult(address=address, open_ports=open_ports, icmp_reply=icmp_reply)

    def _probe_port(self, address: str, port: int) -> bool:
        return bool(self._tcp_probe(
            address,
            port,
            timeout=self.config.probe_timeout,
            error_handler=self.error_handler,
        ))
