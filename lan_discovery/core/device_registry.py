"""
Device registry: the single mutable store of discovered devices.

All three discovery sources insert into one registry concurrently. The
registry deduplicates by source-specific identity, keeps insertion order and
publishes incremental events to observers. Events are published while the
registry lock is held, so observers see each source's events in that
source's own arrival order.
"""

import threading
from typing import Callable, Dict, List, Optional, Tuple

from .data_models import (
    Device,
    DeviceIdentity,
    DiscoverySource,
    RegistryEvent,
    RegistryEventKind,
)
from ..utils.error_handler import RegistryError

RegistryObserver = Callable[[RegistryEvent], None]


class DeviceRegistry:
    """
    Thread-safe, insertion-ordered, deduplicating device store.

    Devices are only added through ``insert_or_ignore``. Resolved fields are
    written directly on the Device; the registry forwards those writes to its
    observers as UPDATED events while the device is registered.
    """

    def __init__(self, logger=None):
        self.logger = logger
        self._lock = threading.RLock()
        self._devices: List[Device] = []
        self._index: Dict[DeviceIdentity, Device] = {}
        self._device_subscriptions: Dict[DeviceIdentity, Callable[[], None]] = {}
        self._observers: List[RegistryObserver] = []
        self._scanning = False

    def insert_or_ignore(self, candidate: Device) -> Tuple[Device, bool]:
        """
        Add ``candidate`` unless a device with the same identity exists.

        Args:
            candidate: Device with its identity fields populated

        Returns:
            Tuple of (stored device, True if the candidate was inserted)
        """
        with self._lock:
            existing = self._index.get(candidate.identity)
            if existing is not None:
                return existing, False

            self._devices.append(candidate)
            self._index[candidate.identity] = candidate
            self._device_subscriptions[candidate.identity] = candidate.subscribe(self._on_device_update)
            self._publish(RegistryEvent(RegistryEventKind.ADDED, candidate))

        if self.logger:
            self.logger.debug(
                f"Registered {candidate.source.value} device {candidate.identifier}",
                total=len(self),
            )
        return candidate, True

    def clear(self) -> None:
        """
        Remove every device.

        Raises:
            RegistryError: If a scan is in progress
        """
        with self._lock:
            if self._scanning:
                raise RegistryError("Cannot clear the device registry while a scan is in progress")
            for unsubscribe in self._device_subscriptions.values():
                unsubscribe()
            self._device_subscriptions.clear()
            self._devices.clear()
            self._index.clear()
            self._publish(RegistryEvent(RegistryEventKind.CLEARED))

    def mark_scanning(self, scanning: bool) -> None:
        with self._lock:
            self._scanning = scanning

    @property
    def scanning(self) -> bool:
        with self._lock:
            return self._scanning

    def subscribe(self, observer: RegistryObserver) -> Callable[[], None]:
        """
        Register an observer for ADDED, UPDATED and CLEARED events.

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

    @property
    def devices(self) -> List[Device]:
        """Snapshot of the registered devices in insertion order."""
        with self._lock:
            return list(self._devices)

    def devices_from(self, source: DiscoverySource) -> List[Device]:
        with self._lock:
            return [device for device in self._devices if device.source is source]

    def find(self, identity: DeviceIdentity) -> Optional[Device]:
        with self._lock:
            return self._index.get(identity)

    def __contains__(self, identity: DeviceIdentity) -> bool:
        return self.find(identity) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def _on_device_update(self, device: Device, field_name: str, value) -> None:
        with self._lock:
            if self._index.get(device.identity) is not device:
                return
            self._publish(RegistryEvent(RegistryEventKind.UPDATED, device, field_name, value))

    def _publish(self, event: RegistryEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception as e:
                # Observer failures stay inside the registry
                if self.logger:
                    self.logger.error(f"Registry observer failed on {event.kind.value} event", exception=e)
