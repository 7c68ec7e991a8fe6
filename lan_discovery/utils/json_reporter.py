"""
JSON report generator for the LAN discovery engine.

Writes a ScanReport to a timestamped JSON file, adding a numeric suffix when
a report with the same name already exists.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.data_models import ScanReport
from ..core.device_classifier import DeviceClassifier
from .logger import get_logger


class JSONReporter:
    """
    Handles generation of JSON reports from scan reports.

    Devices keep their discovery order. Each device entry carries its display
    category from the DeviceClassifier.
    """

    MAX_COLLISIONS = 999

    def __init__(self, output_directory: str = "results", classifier: Optional[DeviceClassifier] = None):
        """
        Initialize the JSON reporter.

        Args:
            output_directory: Directory where JSON reports will be saved
            classifier: Classifier used for the device category field
        """
        self.output_directory = Path(output_directory)
        self.classifier = classifier or DeviceClassifier()
        self.logger = get_logger("JSONReporter")

    def generate_report(self, report: ScanReport) -> str:
        """
        Write ``report`` as JSON.

        Args:
            report: Scan report to serialize

        Returns:
            str: Path to the generated JSON file

        Raises:
            OSError: If the file cannot be written
        """
        self.output_directory.mkdir(parents=True, exist_ok=True)

        json_data = self.to_json_data(report)
        filepath = self._handle_file_collision(
            self.output_directory / self._generate_filename(report.session.started_at)
        )

        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(json_data, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            self.logger.error(f"Failed to write JSON report to {filepath}: {e}")
            raise

        self.logger.info(f"JSON report successfully generated: {filepath}")
        return str(filepath)

    def to_json_data(self, report: ScanReport) -> Dict[str, Any]:
        """Convert a ScanReport into a JSON-serializable dictionary."""
        session = report.session
        devices = []
        for device in report.devices:
            device_dict = device.to_dict()
            device_dict["category"] = self.classifier.classify(device).value
            devices.append(device_dict)

        return {
            "scan_session": {
                "session_id": session.session_id,
                "started_at": session.started_at.isoformat(),
                "ended_at": session.ended_at.isoformat() if session.ended_at else None,
                "duration": session.duration,
                "elapsed": round(session.elapsed, 3),
                "end_reason": session.end_reason,
            },
            "network_info": {
                "host_ip": report.network_info.host_ip,
                "prefix": report.network_info.prefix,
                "excluded_addresses": list(report.network_info.excluded_addresses),
            },
            "sources": [
                {
                    "source": source_report.source.value,
                    "status": source_report.status.value,
                    "devices_found": source_report.devices_found,
                    "duration": round(source_report.duration, 3),
                    "errors": list(source_report.errors),
                    "metadata": dict(source_report.metadata),
                }
                for source_report in report.source_reports
            ],
            "error_statistics": report.error_statistics,
            "device_count": len(devices),
            "devices": devices,
        }

    def _generate_filename(self, timestamp: datetime) -> str:
        # Format: lan_discovery_YYYYMMDD_HHMMSS.json
        return f"lan_discovery_{timestamp.strftime('%Y%m%d_%H%M%S')}.json"

    def _handle_file_collision(self, filepath: Path) -> Path:
        """
        Handle filename collisions by adding an incremental suffix.

        Args:
            filepath: Original file path

        Returns:
            Path: Unique file path
        """
        if not filepath.exists():
            return filepath

        for counter in range(1, self.MAX_COLLISIONS + 1):
            candidate = filepath.parent / f"{filepath.stem}_{counter:03d}{filepath.suffix}"
            if not candidate.exists():
                self.logger.info(f"File collision detected, using filename: {candidate.name}")
                return candidate

        raise OSError(f"Too many file collisions for {filepath}")
