"""
Main entry point for the LAN discovery tool.

This module provides the command-line interface: argument parsing,
pre-flight checks, running one discovery scan, printing the device table,
writing the JSON report and graceful shutdown on SIGINT/SIGTERM.
"""

import argparse
import shutil
import signal
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from . import __version__
from .config.config_loader import ConfigLoader, DiscoveryConfig
from .core.device_classifier import DeviceClassifier
from .core.scan_controller import ScanController
from .scanners.port_scanner import PortScanner
from .utils.json_reporter import JSONReporter
from .utils.logger import LogLevel, get_logger, set_log_level

REQUIRED_PACKAGES = ["colorama", "yaml", "zeroconf"]
OPTIONAL_PACKAGES = ["scapy"]


class LanDiscoveryApp:
    """
    Main application class for the LAN discovery tool.

    Handles CLI interface, pre-flight checks, and application lifecycle.
    """

    def __init__(self):
        """Initialize the application."""
        self.logger = get_logger("LanDiscovery")
        self.controller: Optional[ScanController] = None
        self.shutdown_requested = False

    def _install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum: int, frame) -> None:
        """
        Handle shutdown signals gracefully.

        The first signal stops the running scan so the report is still
        written; a second one terminates immediately.

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        signal_names = {signal.SIGINT: "SIGINT", signal.SIGTERM: "SIGTERM"}
        signal_name = signal_names.get(signum, f"Signal {signum}")

        if not self.shutdown_requested:
            self.logger.warning(f"Received {signal_name} - stopping scan...")
            self.shutdown_requested = True
            if self.controller is not None:
                self.controller.stop_scan()
        else:
            self.logger.error("Force shutdown requested - terminating immediately")
            sys.exit(1)

    def _check_tool_availability(self, tool_name: str) -> bool:
        """
        Check if an external tool is available.

        Args:
            tool_name: Name of the tool to check

        Returns:
            bool: True if tool is available, False otherwise
        """
        tool_path = shutil.which(tool_name)
        if tool_path:
            self.logger.debug(f"Found {tool_name} at: {tool_path}")
            return True
        self.logger.warning(f"Tool '{tool_name}' not found in PATH")
        return False

    def _check_python_dependencies(self, packages: List[str]) -> List[str]:
        """
        Check if Python packages are importable.

        Returns:
            list: Names of the missing packages
        """
        missing_packages = []
        for package in packages:
            try:
                __import__(package)
                self.logger.debug(f"Python package {package} is available")
            except ImportError:
                missing_packages.append(package)
                self.logger.debug(f"Python package {package} is missing")
        return missing_packages

    def _perform_preflight_checks(self, config: DiscoveryConfig) -> bool:
        """
        Perform pre-flight checks for tools and packages.

        Returns:
            bool: True if all required checks pass
        """
        self.logger.section("PRE-FLIGHT CHECKS")
        all_checks_passed = True

        sweep = config.sweep
        if config.scan.enable_sweep and sweep.icmp_enabled:
            if sweep.icmp_method == "ping" and not self._check_tool_availability("ping"):
                self.logger.info("  • Install ping or set icmp_method: scapy in sweep_config.yml")
                self.logger.info("  • The sweep still runs with TCP probes only")
            if sweep.icmp_method == "scapy" and self._check_python_dependencies(OPTIONAL_PACKAGES):
                self.logger.warning("scapy is not installed, ICMP probes will report no reply")

        self.logger.info("Checking Python dependencies...")
        missing_deps = self._check_python_dependencies(REQUIRED_PACKAGES)
        if missing_deps:
            all_checks_passed = False
            self.logger.error(f"Missing Python dependencies: {', '.join(missing_deps)}")
            self.logger.info("Install missing dependencies with: pip install -e .")

        if all_checks_passed:
            self.logger.success("All pre-flight checks passed")
        else:
            self.logger.error("Some pre-flight checks failed - see messages above")
        return all_checks_passed

    def _validate_paths(self, config_dir: Optional[str], output_dir: Optional[str]) -> Tuple[Optional[str], str]:
        """
        Validate the configuration directory and prepare the output directory.

        Returns:
            tuple: (config_dir or None for packaged defaults, output_dir)

        Raises:
            SystemExit: If a directory is unusable
        """
        validated_config_dir = None
        if config_dir:
            config_path = Path(config_dir)
            if not config_path.is_dir():
                self.logger.error(f"Configuration directory does not exist: {config_dir}")
                sys.exit(1)
            validated_config_dir = str(config_path.resolve())

        output_path = Path(output_dir or "results")
        try:
            output_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(f"Cannot create output directory {output_path}: {e}")
            sys.exit(1)

        self.logger.info(f"Using configuration directory: {validated_config_dir or 'packaged defaults'}")
        self.logger.info(f"Using output directory: {output_path.resolve()}")
        return validated_config_dir, str(output_path.resolve())

    def _load_config(self, args: argparse.Namespace, config_dir: Optional[str]) -> DiscoveryConfig:
        config = ConfigLoader(config_dir).load_all()
        if args.no_sweep:
            config.scan.enable_sweep = False
        if args.no_mdns:
            config.scan.enable_mdns = False
        if args.no_ssdp:
            config.scan.enable_ssdp = False
        if args.strict:
            config.scan.strict_source_failures = True
        return config

    def _print_devices(self, controller: ScanController) -> None:
        classifier = DeviceClassifier()
        devices = controller.devices
        self.logger.section(f"DISCOVERED DEVICES ({len(devices)})")
        if not devices:
            self.logger.info("No devices found")
            return

        headers = ["Source", "Identifier", "Address", "Port", "Category", "Model"]
        widths = [6, 32, 39, 5, 9, 20]
        self.logger.table_header(headers, widths)
        for device in devices:
            self.logger.table_row(
                [
                    device.source.value,
                    device.identifier,
                    device.address or "-",
                    device.port or "-",
                    classifier.classify(device).value,
                    device.model or device.manufacturer or "-",
                ],
                widths,
                highlight=device.address is None,
            )

    def run_port_scan(self, args: argparse.Namespace) -> int:
        """Scan a port range on one host and print open ports with banners."""
        try:
            start_port, end_port = parse_port_range(args.port_range)
        except ValueError as e:
            self.logger.error(str(e))
            return 2

        self.logger.section(f"PORT SCAN {args.port_scan}")
        open_ports = PortScanner(self.logger).scan(args.port_scan, start_port, end_port, args.port_timeout)
        if not open_ports:
            self.logger.info("No open ports found")
            return 0

        widths = [6, 60]
        self.logger.table_header(["Port", "Banner"], widths)
        for scanned in open_ports:
            self.logger.table_row([scanned.port, scanned.banner or "-"], widths)
        return 0

    def run(self, args: argparse.Namespace) -> int:
        """
        Run the LAN discovery application.

        Args:
            args: Parsed command line arguments

        Returns:
            int: Exit code (0 for success, non-zero for failure)
        """
        self._install_signal_handlers()
        try:
            if args.port_scan:
                return self.run_port_scan(args)

            config_dir, output_dir = self._validate_paths(args.config_dir, args.output_dir)
            config = self._load_config(args, config_dir)

            if not self._perform_preflight_checks(config):
                if not args.skip_checks:
                    self.logger.error("Pre-flight checks failed. Use --skip-checks to bypass.")
                    return 1
                self.logger.warning("Skipping pre-flight checks as requested")

            if self.shutdown_requested:
                self.logger.info("Shutdown requested before scan start")
                return 0

            self.controller = ScanController(config)
            self.controller.start_scan(args.duration)
            self.logger.progress_start("Discovering devices")
            self.controller.wait()
            self.logger.progress_end(f"Discovery finished: {len(self.controller.devices)} devices")

            report = self.controller.report()
            self._print_devices(self.controller)
            report_path = JSONReporter(output_dir).generate_report(report)
            self.logger.success(f"Scan completed. Report saved to: {report_path}")
            return 0

        except KeyboardInterrupt:
            self.logger.warning("Scan interrupted by user")
            if self.controller is not None:
                self.controller.stop_scan()
            return 130
        except Exception as e:
            self.logger.error(f"LAN discovery failed: {str(e)}", exception=e)
            return 1


def parse_port_range(text: str) -> Tuple[int, int]:
    """
    Parse ``A-B`` into a (start, end) tuple.

    Raises:
        ValueError: If the text is not two positive integers with start <= end
    """
    start_text, separator, end_text = text.partition("-")
    try:
        start_port, end_port = int(start_text), int(end_text)
    except ValueError:
        raise ValueError(f"Invalid port range '{text}', expected A-B")
    if not separator or start_port <= 0 or end_port <= 0 or start_port > end_port or end_port > 65535:
        raise ValueError(f"Invalid port range '{text}', expected 1 <= A <= B <= 65535")
    return start_port, end_port


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the command line argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="lan_discovery",
        description="LAN discovery - find hosts and services with a subnet sweep, mDNS and SSDP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m lan_discovery                               # Scan for the configured duration
  python -m lan_discovery --duration 10                 # Shorter scan window
  python -m lan_discovery --no-sweep                    # Advertisement based discovery only
  python -m lan_discovery --config-dir ./configs        # Use custom config directory
  python -m lan_discovery --port-scan 192.168.1.20 --port-range 1-1024
        """
    )

    parser.add_argument(
        "--duration",
        type=float,
        help="Scan window in seconds. Defaults to the duration in scan_config.yml (25s)"
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        help="Directory containing scan_config.yml, sweep_config.yml, mdns_config.yml and ssdp_config.yml"
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        help="Directory for output JSON reports. Defaults to ./results"
    )
    parser.add_argument("--no-sweep", action="store_true", help="Disable the subnet sweep")
    parser.add_argument("--no-mdns", action="store_true", help="Disable multicast service discovery")
    parser.add_argument("--no-ssdp", action="store_true", help="Disable SSDP discovery")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="End the scan as soon as any discovery source fails to start"
    )
    parser.add_argument(
        "--skip-checks",
        action="store_true",
        help="Continue even if pre-flight checks fail"
    )
    parser.add_argument(
        "--port-scan",
        metavar="HOST",
        help="Scan a TCP port range on HOST instead of discovering devices"
    )
    parser.add_argument(
        "--port-range",
        default="1-1024",
        help="Port range for --port-scan, as A-B (default: 1-1024)"
    )
    parser.add_argument(
        "--port-timeout",
        type=float,
        default=1.0,
        help="Per-port timeout in seconds for --port-scan (default: 1.0)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging output"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"LAN Discovery {__version__}"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the LAN discovery tool.

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_log_level(LogLevel.DEBUG)

    app = LanDiscoveryApp()
    return app.run(args)


if __name__ == "__main__":
    sys.exit(main())
