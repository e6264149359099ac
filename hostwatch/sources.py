"""Optional sources that feed a snapshot alongside the local counters.

Each source swallows tool failures and returns its ``empty`` value instead, so
one broken tool only blanks its own field.
"""
from __future__ import annotations

import logging
from typing import Any

from hostwatch.cache import TtlCache
from hostwatch.command import CommandError, run_command
from hostwatch.config import CollectorConfig
from hostwatch.local import LocalCollector
from hostwatch.models import DockerContainer, GpuInfo, PortInfo, ProcessInfo
from hostwatch.parsers import (
    GPU_QUERY_FIELDS,
    parse_docker_containers,
    parse_docker_stats,
    parse_netstat,
    parse_nvidia_smi,
    parse_sensors,
    parse_ss,
)

SensorReading = tuple[float | None, float | None]


class Source:
    """One independently enabled collector in the per-cycle fan-out."""

    name = "source"

    def __init__(self, config: CollectorConfig) -> None:
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

    def empty(self) -> Any:
        """Value reported when the source has nothing to offer this cycle."""
        return None

    def collect(self) -> Any:
        raise NotImplementedError


class GpuSource(Source):
    name = "gpu"
    CACHE_KEY = "nvidia"

    def __init__(self, config: CollectorConfig, cache: TtlCache[list[GpuInfo]] | None = None) -> None:
        super().__init__(config)
        self.cache = cache if cache is not None else TtlCache(config.gpu_cache_ttl_s)

    def collect(self) -> list[GpuInfo] | None:
        cached = self.cache.get(self.CACHE_KEY)
        if cached is not None:
            return cached
        try:
            output = run_command(
                self.config.nvidia_smi_path,
                [
                    f"--query-gpu={','.join(GPU_QUERY_FIELDS)}",
                    "--format=csv,noheader,nounits",
                ],
                self.config.command_timeout_s,
            )
        except CommandError as exc:
            self.logger.debug("GPU query unavailable: %s", exc)
            return None
        gpus = parse_nvidia_smi(output)
        if not gpus:
            self.logger.debug("nvidia-smi reported no usable GPUs.")
            return None
        self.cache.set(self.CACHE_KEY, gpus)
        return gpus


class SensorsSource(Source):
    name = "sensors"
    CACHE_KEY = "cpu"

    def __init__(self, config: CollectorConfig, cache: TtlCache[SensorReading] | None = None) -> None:
        super().__init__(config)
        self.cache = cache if cache is not None else TtlCache(config.sensors_cache_ttl_s)

    def empty(self) -> SensorReading:
        return (None, None)

    def collect(self) -> SensorReading:
        cached = self.cache.get(self.CACHE_KEY)
        if cached is not None:
            return cached
        try:
            output = run_command(self.config.sensors_path, [], self.config.command_timeout_s)
        except CommandError as exc:
            self.logger.debug("CPU sensors unavailable: %s", exc)
            return self.empty()
        reading = parse_sensors(output)
        self.cache.set(self.CACHE_KEY, reading)
        return reading


class PortSource(Source):
    """Listening and established sockets; never cached so it always reflects live state."""

    name = "ports"
    ARGS = ["-tunap"]

    def empty(self) -> list[PortInfo]:
        return []

    def collect(self) -> list[PortInfo]:
        ports = self._collect_ss()
        if ports:
            return ports
        ports = self._collect_netstat()
        if ports:
            return ports
        self.logger.warning("Port scan failed: neither ss nor netstat produced results.")
        return []

    def _collect_ss(self) -> list[PortInfo]:
        try:
            output = run_command(self.config.ss_path, self.ARGS, self.config.port_scan_timeout_s)
        except CommandError as exc:
            self.logger.debug("ss unavailable, falling back to netstat: %s", exc)
            return []
        return parse_ss(output)

    def _collect_netstat(self) -> list[PortInfo]:
        try:
            output = run_command(
                self.config.netstat_path, self.ARGS, self.config.port_scan_timeout_s
            )
        except CommandError as exc:
            self.logger.debug("netstat unavailable: %s", exc)
            return []
        return parse_netstat(output)


class ContainerSource(Source):
    name = "containers"
    PROBE_ARGS = ["version", "--format", "{{.Server.Version}}"]
    LIST_ARGS = ["ps", "-a", "--format", "{{json .}}"]
    STATS_ARGS = ["stats", "--no-stream", "--format", "{{json .}}"]

    def empty(self) -> list[DockerContainer]:
        return []

    def available(self) -> bool:
        try:
            run_command(
                self.config.docker_path, self.PROBE_ARGS, self.config.docker_probe_timeout_s
            )
        except CommandError as exc:
            self.logger.debug("Docker not available: %s", exc)
            return False
        return True

    def collect(self) -> list[DockerContainer]:
        if not self.available():
            return self.empty()
        timeout = self.config.command_timeout_s
        try:
            listing = run_command(self.config.docker_path, self.LIST_ARGS, timeout)
        except CommandError as exc:
            self.logger.debug("docker ps failed: %s", exc)
            return []
        try:
            stats_output = run_command(self.config.docker_path, self.STATS_ARGS, timeout)
        except CommandError as exc:
            self.logger.debug("docker stats failed: %s", exc)
            stats_output = ""
        stats = parse_docker_stats(stats_output)
        return parse_docker_containers(listing, stats)


class ProcessSource(Source):
    name = "processes"

    def __init__(self, config: CollectorConfig, local: LocalCollector | None = None) -> None:
        super().__init__(config)
        self.local = local if local is not None else LocalCollector()

    def empty(self) -> list[ProcessInfo]:
        return []

    def collect(self) -> list[ProcessInfo]:
        return self.local.collect_processes(self.config.max_processes)


def build_sources(config: CollectorConfig, local: LocalCollector | None = None) -> list[Source]:
    """Instantiate the enabled sources; disabled ones are never constructed."""
    sources: list[Source] = []
    if config.enable_gpu:
        sources.append(GpuSource(config))
    if config.enable_sensors:
        sources.append(SensorsSource(config))
    if config.enable_ports:
        sources.append(PortSource(config))
    if config.enable_containers:
        sources.append(ContainerSource(config))
    if config.enable_processes:
        sources.append(ProcessSource(config, local))
    return sources
