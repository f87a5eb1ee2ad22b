from __future__ import annotations

from enum import Enum


class EventType(str, Enum):
    LOGIN_SUCCESS = "auth.login_success"
    LOGOUT = "auth.logout"
    ALREADY_AUTHENTICATED = "auth.already_authenticated"
    THEME_CHANGED = "theme.changed"
    HASH_CHANGE = "nav.hash_change"
    NAV_TRANSITION = "nav.transition"
    SHUTDOWN_SIGNAL = "shutdown.signal"
    STATE_TRANSITION = "state.transition"
    SYSTEM_STATUS = "system.status"
    NOTIFICATION_CREATED = "notification.created"
    ERROR_RAISED = "error.raised"


CORE_EVENT_TYPES: set[str] = {t.value for t in EventType}


def is_core_event_type(event_type: str) -> bool:
    return str(event_type) in CORE_EVENT_TYPES
