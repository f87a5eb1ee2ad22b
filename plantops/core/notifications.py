from __future__ import annotations

import asyncio
import collections
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional

from plantops.core.config.models import NotificationsConfig
from plantops.core.events.bus import EventBus
from plantops.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from plantops.core.events.registry import EventType


class NotificationSeverity(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"


ICONS: Dict[NotificationSeverity, str] = {
    NotificationSeverity.success: "check-circle",
    NotificationSeverity.error: "exclamation-circle",
    NotificationSeverity.warning: "exclamation-triangle",
    NotificationSeverity.info: "info-circle",
}

_BUS_SEVERITY: Dict[NotificationSeverity, EventSeverity] = {
    NotificationSeverity.info: EventSeverity.INFO,
    NotificationSeverity.success: EventSeverity.INFO,
    NotificationSeverity.warning: EventSeverity.WARN,
    NotificationSeverity.error: EventSeverity.ERROR,
}


@dataclass(frozen=True)
class Notification:
    id: str
    message: str
    severity: NotificationSeverity
    created_at: float
    expires_at: float

    @property
    def icon(self) -> str:
        return ICONS.get(self.severity, "info-circle")


NotificationSink = Callable[[Notification], None]


def _coerce_severity(value: str | NotificationSeverity) -> NotificationSeverity:
    try:
        return NotificationSeverity(value)
    except ValueError:
        return NotificationSeverity.info


class NotificationChannel:
    """
    Ephemeral user-facing feedback.

    notify() never raises and never waits: renderers (sinks) are called inline
    with failures isolated, and each notification expires after a fixed
    duration unless dismissed first.
    """

    def __init__(
        self,
        *,
        cfg: Optional[NotificationsConfig] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.cfg = cfg or NotificationsConfig()
        self.bus = bus
        self.clock = clock
        self.logger = logger or logging.getLogger("plantops.notifications")
        self._items: Deque[Notification] = collections.deque()
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._sinks: List[NotificationSink] = []

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, sink: NotificationSink) -> None:
        self._sinks = [s for s in self._sinks if s != sink]

    def notify(self, message: str, severity: str | NotificationSeverity = NotificationSeverity.info) -> Optional[Notification]:
        try:
            return self._notify(str(message), _coerce_severity(severity))
        except Exception:  # noqa: BLE001
            self.logger.exception("Notification failed: %s", message)
            return None

    def dismiss(self, notification_id: str) -> bool:
        timer = self._timers.pop(notification_id, None)
        if timer is not None:
            timer.cancel()
        before = len(self._items)
        self._items = collections.deque(n for n in self._items if n.id != notification_id)
        return len(self._items) != before

    def active(self) -> List[Notification]:
        self._prune()
        return list(self._items)

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._items.clear()

    # ---- internals ----
    def _notify(self, message: str, severity: NotificationSeverity) -> Notification:
        now = self.clock()
        n = Notification(
            id=uuid.uuid4().hex,
            message=message,
            severity=severity,
            created_at=now,
            expires_at=now + float(self.cfg.duration_seconds),
        )
        self._prune()
        self._items.append(n)
        while len(self._items) > int(self.cfg.max_visible):
            self.dismiss(self._items[0].id)
        self._schedule_expiry(n)

        log = self.logger.error if severity == NotificationSeverity.error else self.logger.info
        log("[notify:%s] %s", severity.value, message)

        for sink in list(self._sinks):
            try:
                sink(n)
            except Exception:  # noqa: BLE001
                self.logger.exception("Notification sink failed")

        if self.bus is not None:
            self.bus.publish(
                BaseEvent(
                    event_type=EventType.NOTIFICATION_CREATED,
                    source_subsystem=SourceSubsystem.notifications,
                    severity=_BUS_SEVERITY[severity],
                    payload={"id": n.id, "message": message, "severity": severity.value},
                )
            )
        return n

    def _schedule_expiry(self, n: Notification) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop: expiry happens lazily in active()
            return
        self._timers[n.id] = loop.call_later(float(self.cfg.duration_seconds), self.dismiss, n.id)

    def _prune(self) -> None:
        now = self.clock()
        for n in [n for n in self._items if n.expires_at <= now]:
            self.dismiss(n.id)
