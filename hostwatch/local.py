from __future__ import annotations

from dataclasses import dataclass
import logging
import platform
from pathlib import Path
import socket
import time
from typing import Callable

import psutil

from hostwatch.models import (
    CpuInfo,
    DiskInfo,
    LoadAverage,
    MemoryInfo,
    NetworkInfo,
    NetworkInterface,
    ProcessInfo,
    SystemStaticInfo,
)

KB = 1024
GB = 1024**3

PROCESS_ATTRS = [
    "pid",
    "name",
    "status",
    "cpu_percent",
    "memory_info",
    "username",
    "cmdline",
    "create_time",
]

_STATUS_MAP = {
    psutil.STATUS_RUNNING: "Running",
    psutil.STATUS_SLEEPING: "Sleeping",
    psutil.STATUS_DISK_SLEEP: "Sleeping",
    psutil.STATUS_IDLE: "Idle",
    psutil.STATUS_ZOMBIE: "Zombie",
}


def map_process_status(status: str | None) -> str:
    if status is None:
        return "Unknown"
    return _STATUS_MAP.get(status, "Unknown")


@dataclass
class NetworkRate:
    """Rolling RX/TX byte totals used to turn cumulative counters into KB/s.

    With ``interval_s`` set, each delta is divided by that nominal tick length,
    so scheduler jitter does not show up as rate noise. Without it the
    measured time between samples is used.
    """

    interval_s: float | None = None
    last_rx_bytes: int = 0
    last_tx_bytes: int = 0
    last_sample: float | None = None

    def update(self, rx_bytes: int, tx_bytes: int, now: float) -> tuple[float, float]:
        if self.last_sample is None:
            rates = (0.0, 0.0)
        else:
            seconds = self.interval_s if self.interval_s else now - self.last_sample
            if seconds <= 0:
                rates = (0.0, 0.0)
            else:
                rx_diff = max(rx_bytes - self.last_rx_bytes, 0)
                tx_diff = max(tx_bytes - self.last_tx_bytes, 0)
                rates = (rx_diff / KB / seconds, tx_diff / KB / seconds)
        self.last_rx_bytes = rx_bytes
        self.last_tx_bytes = tx_bytes
        self.last_sample = now
        return rates


@dataclass
class LocalState:
    """OS-counter state carried between cycles; owned by one orchestrator."""

    network: NetworkRate
    primed: bool = False


@dataclass(frozen=True)
class LocalSample:
    cpu: CpuInfo
    memory: MemoryInfo
    disks: list[DiskInfo]
    network: NetworkInfo
    load_average: LoadAverage
    uptime_secs: int


class LocalCollector:
    """Reads CPU, memory, disk, network and load counters straight from psutil."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    def new_state(self, interval_s: float | None = None) -> LocalState:
        return LocalState(network=NetworkRate(interval_s=interval_s))

    def prime(self, state: LocalState) -> None:
        # psutil's first cpu_percent(interval=None) call only sets a baseline
        psutil.cpu_percent(interval=None)
        psutil.cpu_percent(interval=None, percpu=True)
        state.primed = True

    def sample(self, state: LocalState) -> LocalSample:
        if not state.primed:
            self.prime(state)
        # CPU and memory are read before anything derives from them
        cpu = self.collect_cpu()
        memory = self.collect_memory()
        network = self.collect_network(state.network)
        disks = self.collect_disks()
        return LocalSample(
            cpu=cpu,
            memory=memory,
            disks=disks,
            network=network,
            load_average=self.collect_load(),
            uptime_secs=self.collect_uptime(),
        )

    def collect_cpu(self) -> CpuInfo:
        total = float(psutil.cpu_percent(interval=None))
        per_core = [float(value) for value in psutil.cpu_percent(interval=None, percpu=True)]
        return CpuInfo(total_usage=total, core_usage=per_core)

    def collect_memory(self) -> MemoryInfo:
        vm = psutil.virtual_memory()
        swap = psutil.swap_memory()
        used_percent = (vm.used / vm.total) * 100 if vm.total else 0.0
        swap_percent = (swap.used / swap.total) * 100 if swap.total else 0.0
        return MemoryInfo(
            total_kb=int(vm.total) // KB,
            used_kb=int(vm.used) // KB,
            free_kb=int(vm.available) // KB,
            used_percent=float(used_percent),
            swap_total_kb=int(swap.total) // KB,
            swap_used_kb=int(swap.used) // KB,
            swap_free_kb=int(swap.free) // KB,
            swap_used_percent=float(swap_percent),
        )

    def collect_disks(self) -> list[DiskInfo]:
        disks: list[DiskInfo] = []
        for part in psutil.disk_partitions(all=False):
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                self.logger.debug("Cannot read usage for %s.", part.mountpoint)
                continue
            if not usage.total:
                continue
            free = int(usage.free)
            used = int(usage.total) - free
            disks.append(
                DiskInfo(
                    name=part.device,
                    mount_point=part.mountpoint,
                    file_system=part.fstype,
                    total_gb=usage.total / GB,
                    used_gb=used / GB,
                    free_gb=free / GB,
                    used_percent=(used / usage.total) * 100,
                )
            )
        return disks

    def collect_network(self, rate: NetworkRate) -> NetworkInfo:
        io_stats = psutil.net_io_counters(pernic=True)
        addrs = psutil.net_if_addrs()
        now = self._clock()

        total_rx = 0
        total_tx = 0
        interfaces: list[NetworkInterface] = []
        for name, counters in io_stats.items():
            total_rx += int(counters.bytes_recv)
            total_tx += int(counters.bytes_sent)
            ipv4: list[str] = []
            ipv6: list[str] = []
            for addr in addrs.get(name, []):
                if addr.family == socket.AF_INET:
                    ipv4.append(addr.address)
                elif addr.family == socket.AF_INET6:
                    ipv6.append(addr.address.split("%", 1)[0])
            interfaces.append(NetworkInterface(name=name, ipv4=ipv4, ipv6=ipv6))

        rx_speed, tx_speed = rate.update(total_rx, total_tx, now)
        return NetworkInfo(
            interfaces=interfaces,
            rx_speed_kbps=rx_speed,
            tx_speed_kbps=tx_speed,
            total_rx_gb=total_rx / GB,
            total_tx_gb=total_tx / GB,
        )

    def collect_load(self) -> LoadAverage:
        one, five, fifteen = psutil.getloadavg()
        return LoadAverage(one=float(one), five=float(five), fifteen=float(fifteen))

    def collect_uptime(self) -> int:
        return max(int(time.time() - psutil.boot_time()), 0)

    def collect_processes(self, limit: int) -> list[ProcessInfo]:
        """Top ``limit`` processes by CPU usage.

        psutil caches ``Process`` objects between ``process_iter`` calls, so
        CPU percentages are deltas since the previous cycle.
        """
        total_memory = psutil.virtual_memory().total
        processes: list[ProcessInfo] = []
        for proc in psutil.process_iter(attrs=PROCESS_ATTRS):
            try:
                info = proc.info
                mem_info = info.get("memory_info")
                rss = int(mem_info.rss) if mem_info else 0
                cmdline = info.get("cmdline") or []
                name = info.get("name") or ""
                create_time = info.get("create_time")
                processes.append(
                    ProcessInfo(
                        pid=int(info.get("pid", 0)),
                        name=name,
                        cpu_percent=float(info.get("cpu_percent") or 0.0),
                        memory_percent=(rss / total_memory) * 100 if total_memory else 0.0,
                        memory_mb=rss / KB / KB,
                        status=map_process_status(info.get("status")),
                        user=info.get("username"),
                        command=" ".join(cmdline) if cmdline else name,
                        start_time=int(create_time) if create_time else None,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        processes.sort(key=lambda entry: entry.cpu_percent, reverse=True)
        return processes[:limit]


def _cpu_brand() -> str:
    if platform.system().lower() == "linux":
        try:
            for line in Path("/proc/cpuinfo").read_text().splitlines():
                if line.startswith("model name"):
                    return line.split(":", 1)[1].strip()
        except OSError:
            pass
    return platform.processor() or "Unknown"


def _os_name() -> str:
    try:
        release = platform.freedesktop_os_release()
    except OSError:
        release = {}
    return release.get("NAME") or platform.system() or "Unknown"


def get_static_info() -> SystemStaticInfo:
    """Host facts that do not change while the agent runs."""
    return SystemStaticInfo(
        os_name=_os_name(),
        kernel_version=platform.release() or "Unknown",
        hostname=socket.gethostname() or "Unknown",
        cpu_cores=psutil.cpu_count() or 0,
        cpu_brand=_cpu_brand(),
        total_memory_gb=psutil.virtual_memory().total / GB,
    )
