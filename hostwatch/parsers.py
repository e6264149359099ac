"""Stateless parsers that turn external tool output into typed records.

Every parser works line by line and silently skips what it cannot read; only
an output with no usable line at all produces an empty result.
"""
from __future__ import annotations

from datetime import datetime
import json
import logging
from typing import Any

from hostwatch.logging_utils import TRACE_LEVEL
from hostwatch.models import (
    ContainerState,
    ContainerStats,
    DockerContainer,
    GpuInfo,
    PortInfo,
    PortMapping,
)

logger = logging.getLogger("parsers")

GPU_QUERY_FIELDS = (
    "name",
    "index",
    "memory.total",
    "memory.used",
    "memory.free",
    "utilization.gpu",
    "temperature.gpu",
    "power.draw",
    "power.limit",
    "fan.speed",
    "clocks.gr",
    "clocks.mem",
)
GPU_MANDATORY_FIELDS = 7
NOT_AVAILABLE = "[N/A]"

CPU_TEMP_MARKERS = ("Package id", "Core ", "Tctl", "Tdie", "CPU Temperature", "CPU Temp")
POWER_MARKERS = ("power", "Power", "PPT")
ALARM_MARKER = "ALARM"


def _to_float(value: str) -> float:
    # Some locales print a decimal comma
    return float(value.strip().replace(",", "."))


def _optional_float(value: str) -> float | None:
    value = value.strip()
    if value == NOT_AVAILABLE:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _optional_int(value: str) -> int | None:
    value = value.strip()
    if value == NOT_AVAILABLE:
        return None
    try:
        return int(value)
    except ValueError:
        return None


# -- GPU ---------------------------------------------------------------------


def parse_nvidia_smi(output: str) -> list[GpuInfo]:
    """Parse ``nvidia-smi --format=csv,noheader,nounits`` output."""
    gpus: list[GpuInfo] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.strip().split(", ")
        if len(parts) < GPU_MANDATORY_FIELDS:
            logger.log(TRACE_LEVEL, "Skipping short GPU line: %s", line)
            continue
        try:
            index, mem_total, mem_used, mem_free, util, temp = (
                int(part.strip()) for part in parts[1:GPU_MANDATORY_FIELDS]
            )
        except ValueError:
            logger.log(TRACE_LEVEL, "Skipping GPU line with bad numerics: %s", line)
            continue

        optional = parts[GPU_MANDATORY_FIELDS:] + [NOT_AVAILABLE] * 5
        gpus.append(
            GpuInfo(
                name=parts[0].strip(),
                index=index,
                memory_total_mb=mem_total,
                memory_used_mb=mem_used,
                memory_free_mb=mem_free,
                utilization_percent=util,
                temperature_celsius=temp,
                power_draw_watts=_optional_float(optional[0]),
                power_limit_watts=_optional_float(optional[1]),
                fan_speed_percent=_optional_int(optional[2]),
                graphics_clock_mhz=_optional_int(optional[3]),
                memory_clock_mhz=_optional_int(optional[4]),
            )
        )
    return gpus


# -- lm-sensors --------------------------------------------------------------


def _sensor_temperature(line: str) -> float | None:
    plus = line.find("+")
    if plus < 0:
        return None
    degree = line.find("°", plus)
    if degree < 0:
        return None
    try:
        return _to_float(line[plus + 1 : degree])
    except ValueError:
        return None


def _sensor_power(line: str) -> float | None:
    tokens = line.rsplit(":", 1)[-1].split()
    if not tokens:
        return None
    try:
        return _to_float(tokens[0])
    except ValueError:
        return None


def parse_sensors(output: str) -> tuple[float | None, float | None]:
    """Extract ``(cpu_temperature_c, cpu_power_w)`` from plain ``sensors`` output.

    Temperature is the hottest matching reading. Power is the last matching
    reading in the output, not the largest.
    """
    temperature: float | None = None
    power: float | None = None
    for line in output.splitlines():
        if "°C" in line and any(marker in line for marker in CPU_TEMP_MARKERS):
            value = _sensor_temperature(line)
            if value is not None and (temperature is None or value > temperature):
                temperature = value
        if (
            " W" in line
            and ALARM_MARKER not in line
            and any(marker in line for marker in POWER_MARKERS)
        ):
            value = _sensor_power(line)
            if value is not None:
                power = value
    return temperature, power


# -- listening ports ---------------------------------------------------------


def _split_address(local: str) -> tuple[str, int] | None:
    address, sep, port = local.rpartition(":")
    if not sep:
        return None
    try:
        return address, int(port)
    except ValueError:
        return None


def _between(text: str, start: str, end: str) -> str | None:
    begin = text.find(start)
    if begin < 0:
        return None
    begin += len(start)
    finish = text.find(end, begin)
    if finish < 0:
        return None
    return text[begin:finish]


def parse_ss(output: str) -> list[PortInfo]:
    """Parse ``ss -tunap`` output: listening, unconnected and established sockets."""
    ports: list[PortInfo] = []
    for line in output.splitlines():
        tokens = line.split()
        if len(tokens) < 5:
            continue
        split = _split_address(tokens[4])
        if split is None:
            continue
        address, port = split
        rest = " ".join(tokens[5:])
        program = _between(rest, '(("', '"') or "Unknown"
        pid_text = _between(rest, "pid=", ",")
        pid = int(pid_text) if pid_text and pid_text.isdigit() else None
        ports.append(
            PortInfo(
                port=port,
                protocol=tokens[0],
                state=tokens[1],
                program=program,
                pid=pid,
                address=address,
            )
        )
    ports.sort(key=lambda entry: entry.port)
    return ports


def parse_netstat(output: str) -> list[PortInfo]:
    """Parse ``netstat -tunap`` output (two header lines)."""
    ports: list[PortInfo] = []
    for line in output.splitlines()[2:]:
        tokens = line.split()
        if len(tokens) < 4:
            continue
        split = _split_address(tokens[3])
        if split is None:
            continue
        address, port = split
        protocol = tokens[0]
        if protocol.startswith("tcp") and len(tokens) > 5:
            state = tokens[5]
        else:
            state = "UNCONN"
        program = "Unknown"
        pid = None
        trailing = tokens[-1]
        if len(tokens) > 4 and trailing != "-" and "/" in trailing:
            pid_text, _, name = trailing.partition("/")
            pid = int(pid_text) if pid_text.isdigit() else None
            program = name or "Unknown"
        ports.append(
            PortInfo(
                port=port,
                protocol=protocol,
                state=state,
                program=program,
                pid=pid,
                address=address,
            )
        )
    ports.sort(key=lambda entry: entry.port)
    return ports


# -- docker ------------------------------------------------------------------

_SIZE_UNITS = (
    ("GiB", 1024.0),
    ("GB", 1024.0),
    ("MiB", 1.0),
    ("MB", 1.0),
    ("KiB", 1 / 1024),
    ("KB", 1 / 1024),
    ("kB", 1 / 1024),
    ("B", 1 / (1024 * 1024)),
)


def parse_size_to_mb(size: str) -> float:
    """Convert a docker size string ("1.5GiB", "512MiB", "10") to MB."""
    size = size.strip()
    for suffix, factor in _SIZE_UNITS:
        if size.endswith(suffix):
            number = size[: -len(suffix)].strip()
            try:
                return float(number) * factor
            except ValueError:
                return 0.0
    try:
        return float(size)
    except ValueError:
        return 0.0


def parse_port_mappings(ports: str) -> list[PortMapping]:
    """Parse ``0.0.0.0:8080->80/tcp, 443/tcp`` style port text."""
    mappings: list[PortMapping] = []
    for part in ports.split(", "):
        part = part.strip()
        if not part:
            continue
        host_part, arrow, container_part = part.partition("->")
        if not arrow:
            container_part, host_part = part, ""
        port_text, slash, protocol = container_part.partition("/")
        if not slash:
            continue
        try:
            container_port = int(port_text)
        except ValueError:
            container_port = 0
        host_ip: str | None = None
        host_port: int | None = None
        if arrow and ":" in host_part:
            host_ip, _, host_port_text = host_part.rpartition(":")
            try:
                host_port = int(host_port_text)
            except ValueError:
                host_port = None
        mappings.append(
            PortMapping(
                container_port=container_port,
                host_port=host_port,
                protocol=protocol,
                host_ip=host_ip,
            )
        )
    return mappings


def _json_lines(output: str, kind: str) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.debug("Failed to parse docker %s line: %s", kind, exc)
            continue
        if isinstance(record, dict):
            records.append(record)
    return records


def parse_docker_stats(output: str) -> dict[str, ContainerStats]:
    """Parse ``docker stats --no-stream --format '{{json .}}'`` into a name lookup."""
    stats: dict[str, ContainerStats] = {}
    for record in _json_lines(output, "stats"):
        name = record.get("Name") or record.get("Container")
        cpu_perc = record.get("CPUPerc")
        mem_usage = record.get("MemUsage")
        net_io = record.get("NetIO")
        if not all(isinstance(v, str) for v in (name, cpu_perc, mem_usage, net_io)):
            continue
        try:
            cpu_percent = _to_float(cpu_perc.rstrip("%"))
        except ValueError:
            cpu_percent = 0.0
        used_text, _, limit_text = mem_usage.partition(" / ")
        limit_raw = record.get("MemLimit")
        if isinstance(limit_raw, str) and limit_raw.strip():
            limit_text = limit_raw
        used_mb = parse_size_to_mb(used_text or "0")
        limit_mb = parse_size_to_mb(limit_text or "0")
        rx_text, _, tx_text = net_io.partition(" / ")
        stats[name] = ContainerStats(
            cpu_percent=cpu_percent,
            memory_usage_mb=used_mb,
            memory_limit_mb=limit_mb,
            network_rx_mb=parse_size_to_mb(rx_text or "0"),
            network_tx_mb=parse_size_to_mb(tx_text or "0"),
            memory_percent=(used_mb / limit_mb) * 100 if limit_mb > 0 else 0.0,
        )
    return stats


def _parse_created(value: str) -> int:
    # docker ps prints "2024-05-01 10:00:00 +0000 UTC"
    parts = value.split()
    candidates = [" ".join(parts[:3]), value]
    for candidate in candidates:
        for parser in (
            lambda text: datetime.strptime(text, "%Y-%m-%d %H:%M:%S %z"),
            datetime.fromisoformat,
        ):
            try:
                return int(parser(candidate).timestamp())
            except ValueError:
                continue
    return 0


def parse_docker_containers(
    containers_output: str, stats: dict[str, ContainerStats]
) -> list[DockerContainer]:
    """Parse ``docker ps -a --format '{{json .}}'`` and join with ``stats`` by name."""
    containers: list[DockerContainer] = []
    for record in _json_lines(containers_output, "container"):
        required = [record.get(key) for key in ("ID", "Names", "Image", "Status", "State", "CreatedAt")]
        if not all(isinstance(value, str) for value in required):
            logger.log(TRACE_LEVEL, "Skipping incomplete container record: %s", record)
            continue
        container_id, name, image, status, state, created_at = required
        usage = stats.get(name, ContainerStats())
        ports = record.get("Ports")
        containers.append(
            DockerContainer(
                id=container_id,
                name=name,
                image=image,
                status=status,
                state=ContainerState.from_state(state),
                created=_parse_created(created_at),
                ports=parse_port_mappings(ports) if isinstance(ports, str) else [],
                cpu_percent=usage.cpu_percent,
                memory_usage_mb=usage.memory_usage_mb,
                memory_limit_mb=usage.memory_limit_mb,
                memory_percent=usage.memory_percent,
                network_rx_mb=usage.network_rx_mb,
                network_tx_mb=usage.network_tx_mb,
            )
        )
    return containers
