"""
Router engine, configuration, events and snapshots.
"""

from .config import RouterConfig, router_config_from_env
from .events import Event, EventKind, EventLog
from .host import CallContext, SimulatedReserveSource, StaticReserveSource
from .router import IntentResult, RouterState, SecureRouter
from .snapshot import RouterSnapshot, router_from_snapshot, snapshot_from_router

__all__ = [
    "RouterConfig",
    "router_config_from_env",
    "Event",
    "EventKind",
    "EventLog",
    "CallContext",
    "SimulatedReserveSource",
    "StaticReserveSource",
    "IntentResult",
    "RouterState",
    "SecureRouter",
    "RouterSnapshot",
    "router_from_snapshot",
    "snapshot_from_router",
]
