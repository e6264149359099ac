"""Typed records that make up a published snapshot."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

PROCESS_STATUSES = ("Running", "Sleeping", "Idle", "Zombie", "Unknown")


@dataclass(frozen=True)
class CpuInfo:
    total_usage: float
    core_usage: list[float]
    temperature_celsius: float | None = None
    power_watts: float | None = None


@dataclass(frozen=True)
class MemoryInfo:
    total_kb: int
    used_kb: int
    free_kb: int
    used_percent: float
    swap_total_kb: int
    swap_used_kb: int
    swap_free_kb: int
    swap_used_percent: float


@dataclass(frozen=True)
class DiskInfo:
    name: str
    mount_point: str
    file_system: str
    total_gb: float
    used_gb: float
    free_gb: float
    used_percent: float


@dataclass(frozen=True)
class NetworkInterface:
    name: str
    ipv4: list[str] = field(default_factory=list)
    ipv6: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class NetworkInfo:
    interfaces: list[NetworkInterface]
    rx_speed_kbps: float
    tx_speed_kbps: float
    total_rx_gb: float
    total_tx_gb: float


@dataclass(frozen=True)
class LoadAverage:
    one: float
    five: float
    fifteen: float


@dataclass(frozen=True)
class GpuInfo:
    name: str
    index: int
    memory_total_mb: int
    memory_used_mb: int
    memory_free_mb: int
    utilization_percent: int
    temperature_celsius: int
    power_draw_watts: float | None = None
    power_limit_watts: float | None = None
    fan_speed_percent: int | None = None
    graphics_clock_mhz: int | None = None
    memory_clock_mhz: int | None = None


@dataclass(frozen=True)
class PortInfo:
    port: int
    protocol: str  # tcp / udp
    state: str  # LISTEN, ESTAB, UNCONN, ...
    program: str
    pid: int | None
    address: str


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    name: str
    cpu_percent: float
    memory_percent: float
    memory_mb: float
    status: str  # one of PROCESS_STATUSES
    user: str | None
    command: str
    start_time: int | None


@dataclass(frozen=True)
class PortMapping:
    container_port: int
    host_port: int | None
    protocol: str
    host_ip: str | None


@dataclass(frozen=True)
class ContainerState:
    running: bool
    paused: bool
    restarting: bool
    dead: bool
    pid: int | None = None
    exit_code: int | None = None
    started_at: str | None = None
    finished_at: str | None = None

    @classmethod
    def from_state(cls, state: str) -> ContainerState:
        state = state.strip().lower()
        return cls(
            running=state == "running",
            paused=state == "paused",
            restarting=state == "restarting",
            dead=state == "dead",
        )


@dataclass(frozen=True)
class ContainerStats:
    cpu_percent: float = 0.0
    memory_usage_mb: float = 0.0
    memory_limit_mb: float = 0.0
    network_rx_mb: float = 0.0
    network_tx_mb: float = 0.0
    memory_percent: float = 0.0


@dataclass(frozen=True)
class DockerContainer:
    id: str
    name: str
    image: str
    status: str
    state: ContainerState
    created: int
    ports: list[PortMapping]
    cpu_percent: float
    memory_usage_mb: float
    memory_limit_mb: float
    memory_percent: float
    network_rx_mb: float
    network_tx_mb: float


@dataclass(frozen=True)
class SystemStaticInfo:
    os_name: str
    kernel_version: str
    hostname: str
    cpu_cores: int
    cpu_brand: str
    total_memory_gb: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RealtimeData:
    """One complete telemetry sample for a single tick.

    ``gpu`` is ``None`` and the list fields are empty when the matching source
    is disabled or unavailable.
    """

    timestamp: int
    cpu: CpuInfo
    memory: MemoryInfo
    disks: list[DiskInfo]
    network: NetworkInfo
    load_average: LoadAverage
    uptime_secs: int
    gpu: list[GpuInfo] | None = None
    ports: list[PortInfo] = field(default_factory=list)
    processes: list[ProcessInfo] = field(default_factory=list)
    docker_containers: list[DockerContainer] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
