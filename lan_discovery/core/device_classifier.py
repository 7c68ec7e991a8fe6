"""
Device classification for display purposes.

Assigns a DeviceCategory to a discovered device from keywords in its display
identifier, its advertised service type and, for sweep results, its open
ports. Classification is cosmetic and never affects discovery.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from .data_models import Device, DeviceCategory, DiscoverySource
from .service_catalog import GROUP_CATEGORIES, group_of


@dataclass
class ClassificationRule:
    """
    A rule for classifying devices.

    Attributes:
        name: Human-readable name for the rule
        category: The category this rule assigns
        priority: Priority of the rule (higher is evaluated first)
        identifier_keywords: Lower-case substrings matched against the identifier
        service_types: Service types (``_ipp._tcp``) that indicate this category
        ports: Open ports that indicate this category
    """
    name: str
    category: DeviceCategory
    priority: int
    identifier_keywords: List[str] = field(default_factory=list)
    service_types: Set[str] = field(default_factory=set)
    ports: Set[int] = field(default_factory=set)

    def matches(self, identifier: str, service_type: Optional[str], open_ports: List[int]) -> bool:
        lower = identifier.lower()
        if any(keyword in lower for keyword in self.identifier_keywords):
            return True
        if service_type and service_type in self.service_types:
            return True
        return any(port in self.ports for port in open_ports)


class DeviceClassifier:
    """
    Rule based device classifier.

    Rules are evaluated by descending priority and the first match wins;
    rules with equal priority keep their declaration order. Identifier
    keywords outrank service types, which outrank open ports.
    """

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        rules = rules if rules is not None else self._initialize_classification_rules()
        self.classification_rules = sorted(rules, key=lambda r: r.priority, reverse=True)

    def classify(self, device: Device) -> DeviceCategory:
        """
        Classify a device.

        Args:
            device: Device to classify

        Returns:
            Matching DeviceCategory, or the catalog group category of its
            service type, or UNKNOWN
        """
        service_type = device.service_type if device.source is DiscoverySource.MDNS else None
        for rule in self.classification_rules:
            if rule.matches(device.identifier, service_type, device.open_ports):
                return rule.category

        if service_type:
            group = group_of(service_type)
            if group in GROUP_CATEGORIES:
                return GROUP_CATEGORIES[group]
        return DeviceCategory.UNKNOWN

    def _initialize_classification_rules(self) -> List[ClassificationRule]:
        return [
            ClassificationRule(
                name="Printer by name",
                category=DeviceCategory.PRINTER,
                priority=100,
                identifier_keywords=["epson", "printer"],
            ),
            ClassificationRule(
                name="Lighting by name",
                category=DeviceCategory.LIGHTING,
                priority=100,
                identifier_keywords=["rsled", "rsato"],
            ),
            ClassificationRule(
                name="Computer by name",
                category=DeviceCategory.COMPUTER,
                priority=100,
                identifier_keywords=["mac", "dell", "pc", "computer"],
            ),
            ClassificationRule(
                name="Printing services",
                category=DeviceCategory.PRINTER,
                priority=50,
                service_types={"_ipp._tcp", "_ipps._tcp", "_printer._tcp", "_pdl-datastream._tcp", "_scanner._tcp"},
            ),
            ClassificationRule(
                name="Computer services",
                category=DeviceCategory.COMPUTER,
                priority=50,
                service_types={"_workstation._tcp", "_smb._tcp", "_afpovertcp._tcp", "_ssh._tcp", "_sftp-ssh._tcp", "_rfb._tcp"},
            ),
            ClassificationRule(
                name="Network equipment services",
                category=DeviceCategory.NETWORK,
                priority=50,
                service_types={"_airport._tcp"},
            ),
            ClassificationRule(
                name="Printer ports",
                category=DeviceCategory.PRINTER,
                priority=10,
                ports={515, 631, 9100},
            ),
            ClassificationRule(
                name="Computer ports",
                category=DeviceCategory.COMPUTER,
                priority=10,
                ports={22, 445, 3389},
            ),
            ClassificationRule(
                name="IoT ports",
                category=DeviceCategory.IOT,
                priority=10,
                ports={1883, 5683},
            ),
        ]
