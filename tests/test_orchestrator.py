"""Tests for the cycle orchestrator."""
from __future__ import annotations

import threading
import time
from unittest.mock import patch

import pytest

from hostwatch.config import AppConfig, PublishConfig
from hostwatch.hub import BroadcastHub
from hostwatch.local import LocalSample, LocalState, NetworkRate
from hostwatch.orchestrator import CycleOrchestrator, CycleState
from hostwatch.schema import validate_payload
from hostwatch.sources import Source

from tests.helpers import make_snapshot


class FakeLocal:
    """Local collector stand-in that counts samples."""

    def __init__(self):
        self.samples = 0

    def new_state(self, interval_s=None):
        return LocalState(network=NetworkRate(interval_s=interval_s))

    def sample(self, state):
        self.samples += 1
        base = make_snapshot()
        return LocalSample(
            cpu=base.cpu,
            memory=base.memory,
            disks=base.disks,
            network=base.network,
            load_average=base.load_average,
            uptime_secs=base.uptime_secs,
        )

    def collect_processes(self, limit):
        return []


class StaticSource(Source):
    def __init__(self, name, value, empty=None):
        super().__init__(config=None)
        self.name = name
        self.value = value
        self._empty = empty
        self.calls = 0

    def empty(self):
        return self._empty

    def collect(self):
        self.calls += 1
        return self.value


class FailingSource(StaticSource):
    def collect(self):
        self.calls += 1
        raise RuntimeError("tool crashed")


class BarrierSource(StaticSource):
    def __init__(self, name, value, barrier):
        super().__init__(name, value, empty=[])
        self.barrier = barrier

    def collect(self):
        self.barrier.wait()
        return self.value


@pytest.fixture
def hub():
    return BroadcastHub(capacity=10)


class TestCollectOnce:
    def test_assembles_source_results(self, hub):
        """Each source's result lands in its snapshot field."""
        sources = [
            StaticSource("gpu", ["gpu0"]),
            StaticSource("sensors", (61.0, 15.5), empty=(None, None)),
            StaticSource("ports", ["port"], empty=[]),
            StaticSource("containers", ["container"], empty=[]),
            StaticSource("processes", ["process"], empty=[]),
        ]
        orchestrator = CycleOrchestrator(AppConfig(), hub, local=FakeLocal(), sources=sources)
        subscription = hub.subscribe()
        try:
            snapshot = orchestrator.collect_once()
        finally:
            orchestrator.stop()

        assert snapshot.gpu == ["gpu0"]
        assert snapshot.cpu.temperature_celsius == 61.0
        assert snapshot.cpu.power_watts == 15.5
        assert snapshot.cpu.total_usage == 12.5
        assert snapshot.ports == ["port"]
        assert snapshot.docker_containers == ["container"]
        assert snapshot.processes == ["process"]
        assert subscription.get(timeout=0) is snapshot
        assert orchestrator.cycles == 1
        assert orchestrator.state is CycleState.IDLE

    def test_missing_sources_use_empty_values(self, hub):
        """With no optional sources, gpu is None and the lists are empty."""
        orchestrator = CycleOrchestrator(AppConfig(), hub, local=FakeLocal(), sources=[])
        try:
            snapshot = orchestrator.collect_once()
        finally:
            orchestrator.stop()
        assert snapshot.gpu is None
        assert snapshot.cpu.temperature_celsius is None
        assert snapshot.cpu.power_watts is None
        assert snapshot.ports == []
        assert snapshot.processes == []
        assert snapshot.docker_containers == []

    def test_failing_source_degrades_alone(self, hub, caplog):
        """An exception in one source empties its field; the others still report."""
        failing = FailingSource("ports", None, empty=[])
        healthy = StaticSource("gpu", ["gpu0"])
        orchestrator = CycleOrchestrator(
            AppConfig(), hub, local=FakeLocal(), sources=[failing, healthy]
        )
        try:
            snapshot = orchestrator.collect_once()
        finally:
            orchestrator.stop()
        assert snapshot.ports == []
        assert snapshot.gpu == ["gpu0"]
        assert "Source ports failed" in caplog.text

    def test_sources_run_concurrently(self, hub):
        """Sources overlap in time instead of running one after another."""
        barrier = threading.Barrier(2, timeout=5.0)
        sources = [
            BarrierSource("ports", ["port"], barrier),
            BarrierSource("containers", ["container"], barrier),
        ]
        orchestrator = CycleOrchestrator(AppConfig(), hub, local=FakeLocal(), sources=sources)
        try:
            snapshot = orchestrator.collect_once()
        finally:
            orchestrator.stop()
        assert snapshot.ports == ["port"]
        assert snapshot.docker_containers == ["container"]

    def test_local_state_carries_across_cycles(self, hub):
        local = FakeLocal()
        orchestrator = CycleOrchestrator(AppConfig(), hub, local=local, sources=[])
        try:
            orchestrator.collect_once()
            orchestrator.collect_once()
        finally:
            orchestrator.stop()
        assert local.samples == 2
        assert orchestrator.cycles == 2


class TestScheduling:
    def test_interval_has_floor(self, hub):
        config = AppConfig(publish=PublishConfig(interval_s=0.0))
        orchestrator = CycleOrchestrator(config, hub, local=FakeLocal(), sources=[])
        assert orchestrator.interval == 0.1
        orchestrator.stop()

    def test_network_rate_uses_configured_interval(self, hub):
        config = AppConfig(publish=PublishConfig(interval_s=2.0))
        orchestrator = CycleOrchestrator(config, hub, local=FakeLocal(), sources=[])
        assert orchestrator._local_state.network.interval_s == 2.0
        orchestrator.stop()

    def test_start_publishes_until_stopped(self, hub):
        config = AppConfig(publish=PublishConfig(interval_s=0.1))
        orchestrator = CycleOrchestrator(config, hub, local=FakeLocal(), sources=[])
        subscription = hub.subscribe()
        orchestrator.start()
        try:
            assert orchestrator.is_running
            assert subscription.get(timeout=2.0) is not None
            assert subscription.get(timeout=2.0) is not None
        finally:
            orchestrator.stop()
        assert not orchestrator.is_running
        assert orchestrator.cycles >= 2

    def test_cycle_error_does_not_stop_loop(self, hub):
        """A crashing cycle is logged and the next tick still runs."""
        config = AppConfig(publish=PublishConfig(interval_s=0.1))
        local = FakeLocal()
        original = local.sample
        calls = []

        def flaky_sample(state):
            calls.append(state)
            if len(calls) == 1:
                raise RuntimeError("first cycle fails")
            return original(state)

        local.sample = flaky_sample
        orchestrator = CycleOrchestrator(config, hub, local=local, sources=[])
        subscription = hub.subscribe()
        orchestrator.start()
        try:
            assert subscription.get(timeout=2.0) is not None
        finally:
            orchestrator.stop()
        assert len(calls) >= 2


@pytest.mark.integration
class TestLocalOnlyIntegration:
    def test_disabled_sources_never_invoke_tools(self, hub, local_only_config):
        """With every optional source off, no external command is run."""
        with patch("hostwatch.sources.run_command") as mock_run:
            orchestrator = CycleOrchestrator(local_only_config, hub)
            try:
                snapshot = orchestrator.collect_once()
            finally:
                orchestrator.stop()
        mock_run.assert_not_called()
        assert orchestrator.sources == []
        assert snapshot.gpu is None
        assert snapshot.ports == []
        assert snapshot.processes == []
        assert snapshot.docker_containers == []

    def test_real_snapshot_matches_schema(self, hub, local_only_config):
        """A real local-only cycle is fast and produces a schema-valid payload."""
        orchestrator = CycleOrchestrator(local_only_config, hub)
        try:
            started = time.monotonic()
            first = orchestrator.collect_once()
            elapsed = time.monotonic() - started
            second = orchestrator.collect_once()
        finally:
            orchestrator.stop()
        assert elapsed < 1.0
        assert first.network.rx_speed_kbps == 0.0
        assert second.network.rx_speed_kbps >= 0.0
        assert validate_payload(first.to_dict()) == []
        assert validate_payload(second.to_dict()) == []
