"""hostwatch host telemetry agent."""

from hostwatch.config import AppConfig, load_config
from hostwatch.hub import BroadcastHub, Subscription
from hostwatch.local import get_static_info
from hostwatch.models import RealtimeData, SystemStaticInfo
from hostwatch.orchestrator import CycleOrchestrator
from hostwatch.schema import validate_payload

__all__ = [
    "AppConfig",
    "BroadcastHub",
    "CycleOrchestrator",
    "RealtimeData",
    "Subscription",
    "SystemStaticInfo",
    "get_static_info",
    "load_config",
    "validate_payload",
]
