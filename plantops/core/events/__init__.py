"""
Internal event bus.

Named signals (login success, logout, theme changes, hash changes, shutdown)
travel as `BaseEvent` instances; components receive the bus by injection.
"""

from plantops.core.events.bus import EventBus, EventBusConfig
from plantops.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from plantops.core.events.redaction import redact
from plantops.core.events.registry import EventType

__all__ = [
    "redact",
    "BaseEvent",
    "EventSeverity",
    "EventType",
    "SourceSubsystem",
    "EventBus",
    "EventBusConfig",
]
