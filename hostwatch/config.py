from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import configparser

logger = logging.getLogger("config")


@dataclass(frozen=True)
class MqttConfig:
    host: str = "localhost"
    port: int = 1883
    base_topic: str = "telemetry/hostwatch"
    discovery_topic: str = "homeassistant"
    client_id: str = "hostwatch"
    username: str | None = None
    password: str | None = None
    qos: int = 0
    retain: bool = False
    tls_enabled: bool = False
    ca_cert: str | None = None
    keepalive: int = 60


@dataclass(frozen=True)
class PublishConfig:
    interval_s: float = 1.0
    hub_capacity: int = 100


@dataclass(frozen=True)
class CollectorConfig:
    nvidia_smi_path: str = "nvidia-smi"
    sensors_path: str = "sensors"
    ss_path: str = "ss"
    netstat_path: str = "netstat"
    docker_path: str = "docker"
    # Feature toggles
    enable_gpu: bool = True
    enable_sensors: bool = True
    enable_ports: bool = True
    enable_processes: bool = True
    enable_containers: bool = True
    # Timeouts and cache lifetimes, in seconds
    command_timeout_s: float = 5.0
    gpu_cache_ttl_s: float = 5.0
    sensors_cache_ttl_s: float = 10.0
    port_scan_timeout_s: float = 3.0
    docker_probe_timeout_s: float = 2.0
    max_processes: int = 20


@dataclass(frozen=True)
class AppConfig:
    mqtt: MqttConfig = field(default_factory=MqttConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    collector: CollectorConfig = field(default_factory=CollectorConfig)


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _parse(parser: configparser.ConfigParser) -> AppConfig:
    defaults = AppConfig()
    m, p, c = defaults.mqtt, defaults.publish, defaults.collector

    mqtt = MqttConfig(
        host=parser.get("mqtt", "host", fallback=m.host),
        port=parser.getint("mqtt", "port", fallback=m.port),
        base_topic=parser.get("mqtt", "base_topic", fallback=m.base_topic),
        discovery_topic=parser.get("mqtt", "discovery_topic", fallback=m.discovery_topic),
        client_id=parser.get("mqtt", "client_id", fallback=m.client_id),
        username=_get_optional(parser.get("mqtt", "username", fallback=None)),
        password=_get_optional(parser.get("mqtt", "password", fallback=None)),
        qos=parser.getint("mqtt", "qos", fallback=m.qos),
        retain=parser.getboolean("mqtt", "retain", fallback=m.retain),
        tls_enabled=parser.getboolean("mqtt", "tls", fallback=m.tls_enabled),
        ca_cert=_get_optional(parser.get("mqtt", "ca_cert", fallback=None)),
        keepalive=parser.getint("mqtt", "keepalive", fallback=m.keepalive),
    )

    publish = PublishConfig(
        interval_s=parser.getfloat("publish", "interval_s", fallback=p.interval_s),
        hub_capacity=parser.getint("publish", "hub_capacity", fallback=p.hub_capacity),
    )

    collector = CollectorConfig(
        nvidia_smi_path=parser.get("collector", "nvidia_smi_path", fallback=c.nvidia_smi_path),
        sensors_path=parser.get("collector", "sensors_path", fallback=c.sensors_path),
        ss_path=parser.get("collector", "ss_path", fallback=c.ss_path),
        netstat_path=parser.get("collector", "netstat_path", fallback=c.netstat_path),
        docker_path=parser.get("collector", "docker_path", fallback=c.docker_path),
        enable_gpu=parser.getboolean("collector", "enable_gpu", fallback=c.enable_gpu),
        enable_sensors=parser.getboolean("collector", "enable_sensors", fallback=c.enable_sensors),
        enable_ports=parser.getboolean("collector", "enable_ports", fallback=c.enable_ports),
        enable_processes=parser.getboolean(
            "collector", "enable_processes", fallback=c.enable_processes
        ),
        enable_containers=parser.getboolean(
            "collector", "enable_containers", fallback=c.enable_containers
        ),
        command_timeout_s=parser.getfloat(
            "collector", "command_timeout_s", fallback=c.command_timeout_s
        ),
        gpu_cache_ttl_s=parser.getfloat("collector", "gpu_cache_ttl_s", fallback=c.gpu_cache_ttl_s),
        sensors_cache_ttl_s=parser.getfloat(
            "collector", "sensors_cache_ttl_s", fallback=c.sensors_cache_ttl_s
        ),
        port_scan_timeout_s=parser.getfloat(
            "collector", "port_scan_timeout_s", fallback=c.port_scan_timeout_s
        ),
        docker_probe_timeout_s=parser.getfloat(
            "collector", "docker_probe_timeout_s", fallback=c.docker_probe_timeout_s
        ),
        max_processes=parser.getint("collector", "max_processes", fallback=c.max_processes),
    )

    config = AppConfig(mqtt=mqtt, publish=publish, collector=collector)
    _validate(config)
    return config


def _require(ok: bool, message: str) -> None:
    if not ok:
        raise ValueError(message)


def _validate(config: AppConfig) -> None:
    """Reject values that parse but cannot run (zero capacity, negative timeouts)."""
    m, p, c = config.mqtt, config.publish, config.collector
    _require(1 <= m.port <= 65535, f"mqtt.port must be 1-65535, got {m.port}")
    _require(m.qos in (0, 1, 2), f"mqtt.qos must be 0, 1 or 2, got {m.qos}")
    _require(m.keepalive > 0, f"mqtt.keepalive must be positive, got {m.keepalive}")
    _require(p.interval_s > 0, f"publish.interval_s must be positive, got {p.interval_s}")
    _require(p.hub_capacity >= 1, f"publish.hub_capacity must be at least 1, got {p.hub_capacity}")
    _require(c.max_processes >= 0, f"collector.max_processes must be >= 0, got {c.max_processes}")
    for name in (
        "command_timeout_s",
        "gpu_cache_ttl_s",
        "sensors_cache_ttl_s",
        "port_scan_timeout_s",
        "docker_probe_timeout_s",
    ):
        value = getattr(c, name)
        _require(value >= 0, f"collector.{name} must be >= 0, got {value}")


def load_config(path: str | Path | None) -> AppConfig:
    """Load an INI config file, falling back to defaults if it is unusable."""
    if path is None:
        logger.info("No configuration file given; using defaults.")
        return AppConfig()

    parser = configparser.ConfigParser()
    try:
        read_files = parser.read(path, encoding="utf-8")
    except (configparser.Error, UnicodeDecodeError) as exc:
        logger.error("Failed to parse %s: %s", path, exc)
        logger.info("Using default configuration.")
        return AppConfig()
    if not read_files:
        logger.warning("Config file not found: %s; using defaults.", path)
        return AppConfig()

    try:
        config = _parse(parser)
    except ValueError as exc:
        logger.error("Invalid value in %s: %s", path, exc)
        logger.info("Using default configuration.")
        return AppConfig()
    logger.info("Loaded configuration from %s", path)
    return config
