"""
Router events.

Events are fire-and-forget: they are appended to a bounded in-memory log and
mirrored to ``logging``. Nothing in the router reads them back, and a rolled
back operation does not retract the events it already emitted.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Deque, Dict, List, Mapping, Union

logger = logging.getLogger(__name__)


@unique
class EventKind(Enum):
    POOL_CREATED = "PoolCreated"
    POOL_UPDATED = "PoolUpdated"
    POOL_VERIFIED = "PoolVerified"
    INTENT_EXECUTED = "IntentExecuted"
    SECURITY_ALERT = "SecurityAlert"
    EMERGENCY_ACTION = "EmergencyAction"
    AUTHORIZATION_CHANGED = "AuthorizationChanged"
    CROSS_CHAIN_INTENT_CREATED = "CrossChainIntentCreated"
    SETTLEMENT_INITIATED = "SettlementInitiated"
    DISPUTE_RAISED = "DisputeRaised"
    SEQUENCER_FALLBACK = "SequencerFallback"


_WARNING_KINDS = frozenset({EventKind.SECURITY_ALERT, EventKind.EMERGENCY_ACTION})


@dataclass(frozen=True)
class Event:
    seq: int
    kind: EventKind
    fields: Mapping[str, Any]

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]


@dataclass
class EventLog:
    maxlen: int = 10_000
    _events: Deque[Event] = field(init=False)
    _seq: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        if self.maxlen <= 0:
            raise ValueError("maxlen must be positive")
        self._events = deque(maxlen=self.maxlen)

    def emit(self, kind: Union[EventKind, str], **fields: Any) -> Event:
        k = EventKind(kind)
        event = Event(seq=self._seq, kind=k, fields=dict(fields))
        self._seq += 1
        self._events.append(event)
        level = logging.WARNING if k in _WARNING_KINDS else logging.INFO
        logger.log(level, "%s %s", k.value, _format_fields(fields))
        return event

    def events(self) -> List[Event]:
        return list(self._events)

    def of_kind(self, kind: Union[EventKind, str]) -> List[Event]:
        k = EventKind(kind)
        return [e for e in self._events if e.kind == k]

    def last(self) -> Event:
        if not self._events:
            raise IndexError("event log is empty")
        return self._events[-1]

    def __len__(self) -> int:
        return len(self._events)


def _format_fields(fields: Dict[str, Any]) -> str:
    return " ".join(f"{k}={v}" for k, v in sorted(fields.items()))
