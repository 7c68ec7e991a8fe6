"""Shared fixtures for the LAN discovery test suite."""

import time

import pytest

from lan_discovery.core.device_registry import DeviceRegistry
from lan_discovery.utils.error_handler import ErrorHandler
from lan_discovery.utils.logger import Logger, LogLevel


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it returns True or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def quiet_logger():
    return Logger("test", min_level=LogLevel.ERROR)


@pytest.fixture
def error_handler(quiet_logger):
    return ErrorHandler(quiet_logger)


@pytest.fixture
def registry(quiet_logger):
    return DeviceRegistry(quiet_logger)
