from __future__ import annotations

import json
import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from plantops.core.events.registry import EventType


class EventSeverity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SourceSubsystem(str, Enum):
    auth = "auth"
    navigation = "navigation"
    modules = "modules"
    orchestrator = "orchestrator"
    notifications = "notifications"
    shell = "shell"
    shutdown = "shutdown"
    events = "events"


class BaseEvent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    event_type: str
    timestamp: float = Field(default_factory=lambda: time.time())
    trace_id: Optional[str] = None
    source_subsystem: SourceSubsystem
    severity: EventSeverity = EventSeverity.INFO
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_type", mode="before")
    @classmethod
    def _non_empty(cls, v: Any) -> str:
        if isinstance(v, EventType):
            v = v.value
        v = str(v or "").strip()
        if not v:
            raise ValueError("event_type required")
        return v

    @field_validator("payload")
    @classmethod
    def _jsonable(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(v, dict):
            raise ValueError("payload must be an object")
        try:
            json.dumps(v, ensure_ascii=False)
        except Exception as e:  # noqa: BLE001
            raise ValueError("payload must be JSON-serializable") from e
        return v


# ---- typed constructors for the named signals ----
def login_success(*, user: Dict[str, Any], token: str, trace_id: Optional[str] = None) -> BaseEvent:
    return BaseEvent(
        event_type=EventType.LOGIN_SUCCESS,
        trace_id=trace_id,
        source_subsystem=SourceSubsystem.auth,
        payload={"user": user, "token": token},
    )


def logout(*, reason: str = "user", trace_id: Optional[str] = None) -> BaseEvent:
    return BaseEvent(event_type=EventType.LOGOUT, trace_id=trace_id, source_subsystem=SourceSubsystem.auth, payload={"reason": reason})


def already_authenticated(*, user: Dict[str, Any], trace_id: Optional[str] = None) -> BaseEvent:
    return BaseEvent(event_type=EventType.ALREADY_AUTHENTICATED, trace_id=trace_id, source_subsystem=SourceSubsystem.auth, payload={"user": user})


def theme_changed(*, theme: str, trace_id: Optional[str] = None) -> BaseEvent:
    return BaseEvent(event_type=EventType.THEME_CHANGED, trace_id=trace_id, source_subsystem=SourceSubsystem.auth, payload={"theme": theme})


def hash_change(*, fragment: str, trace_id: Optional[str] = None) -> BaseEvent:
    return BaseEvent(event_type=EventType.HASH_CHANGE, trace_id=trace_id, source_subsystem=SourceSubsystem.shell, payload={"fragment": fragment})


def shutdown_signal(*, signal_name: str, trace_id: Optional[str] = None) -> BaseEvent:
    return BaseEvent(event_type=EventType.SHUTDOWN_SIGNAL, trace_id=trace_id, source_subsystem=SourceSubsystem.shell, payload={"signal": signal_name})


def system_status(*, status: str, trace_id: Optional[str] = None) -> BaseEvent:
    return BaseEvent(event_type=EventType.SYSTEM_STATUS, trace_id=trace_id, source_subsystem=SourceSubsystem.auth, payload={"status": status})
