"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import pytest

from hostwatch.config import AppConfig, CollectorConfig, PublishConfig
from tests.helpers import make_snapshot


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "parsers: mark test as a tool-output parser test"
    )
    config.addinivalue_line(
        "markers", "linux: mark test as Linux-specific"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def collector_config():
    """Collector config with every optional source enabled."""
    return CollectorConfig(
        command_timeout_s=5.0,
        gpu_cache_ttl_s=5.0,
        sensors_cache_ttl_s=10.0,
        port_scan_timeout_s=3.0,
        docker_probe_timeout_s=2.0,
        max_processes=20,
    )


@pytest.fixture
def local_only_config():
    """App config with GPU, sensors, ports, processes and containers disabled."""
    return AppConfig(
        publish=PublishConfig(interval_s=1.0, hub_capacity=10),
        collector=CollectorConfig(
            enable_gpu=False,
            enable_sensors=False,
            enable_ports=False,
            enable_processes=False,
            enable_containers=False,
        ),
    )


@pytest.fixture
def snapshot_factory():
    """Builds minimal snapshots distinguished by timestamp."""
    return make_snapshot
