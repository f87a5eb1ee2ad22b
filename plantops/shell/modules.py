from __future__ import annotations

import collections
import logging
from typing import Any, Callable, Deque, Dict, Optional

from plantops.core.config.models import AppConfig
from plantops.core.events.bus import EventBus
from plantops.core.events.models import BaseEvent
from plantops.core.events.registry import EventType
from plantops.core.notifications import Notification, NotificationChannel
from plantops.core.session.models import SessionUser, Theme
from plantops.core.session.store import SessionStore


Out = Callable[[str], None]


class TelemetryTransport:
    """
    Stand-in for the live telemetry channel. It only tracks whether it is
    connected; no frames are exchanged.
    """

    def __init__(self, *, url: str, logger: Optional[logging.Logger] = None):
        self.url = url
        self.logger = logger or logging.getLogger("plantops.shell.transport")
        self.connected = False

    async def connect(self) -> None:
        self.connected = True
        self.logger.info("Telemetry transport connected (%s)", self.url)

    async def disconnect(self) -> None:
        if self.connected:
            self.logger.info("Telemetry transport disconnected")
        self.connected = False

    async def initialize(self) -> None:
        await self.connect()

    def is_ready(self) -> bool:
        return self.connected

    async def destroy(self) -> None:
        await self.disconnect()


class ConsoleDashboard:
    def __init__(self, *, user: SessionUser, store: SessionStore, out: Out = print):
        self.user = user
        self.store = store
        self.out = out
        self._ready = False
        self.shown = 0

    def initialize(self) -> None:
        self._ready = True

    def is_ready(self) -> bool:
        return self._ready

    def show(self) -> None:
        self.shown += 1
        name = self.user.display_name or self.user.username
        self.out(f"[dashboard] {name} ({self.user.role.value}) | system: {self.store.system_status.value}")

    def destroy(self) -> None:
        self._ready = False


class AlertHistory:
    """Keeps recent notifications as the alert log shown on the alerts view."""

    def __init__(self, *, notifier: NotificationChannel, out: Out = print, limit: int = 50):
        self.notifier = notifier
        self.out = out
        self.history: Deque[Notification] = collections.deque(maxlen=int(limit))
        self._ready = False

    def initialize(self) -> None:
        if not self._ready:
            self.notifier.add_sink(self._record)
            self._ready = True

    def is_ready(self) -> bool:
        return self._ready

    def show(self) -> None:
        if not self.history:
            self.out("[alerts] no alerts")
            return
        for n in self.history:
            self.out(f"[alerts] {n.severity.value:7s} {n.message}")

    def destroy(self) -> None:
        self.notifier.remove_sink(self._record)
        self.history.clear()
        self._ready = False

    def _record(self, n: Notification) -> None:
        self.history.appendleft(n)


class ThemeManager:
    def __init__(self, *, bus: EventBus, store: SessionStore, out: Out = print):
        self.bus = bus
        self.store = store
        self.out = out
        self.theme: Theme = store.theme
        self._subscribed = False

    def initialize(self) -> None:
        self.theme = self.store.theme
        if not self._subscribed:
            self.bus.subscribe(EventType.THEME_CHANGED, self._on_theme_changed)
            self._subscribed = True

    def is_ready(self) -> bool:
        return self._subscribed

    def destroy(self) -> None:
        if self._subscribed:
            self.bus.unsubscribe(self._on_theme_changed)
            self._subscribed = False

    def _on_theme_changed(self, ev: BaseEvent) -> None:
        self.theme = Theme(ev.payload.get("theme", Theme.operator.value))
        self.out(f"[theme] {self.theme.value}")


def build_module_factories(
    *,
    cfg: AppConfig,
    bus: EventBus,
    store: SessionStore,
    notifier: NotificationChannel,
    out: Out = print,
) -> Dict[str, Callable[[SessionUser], Any]]:
    """Per-session module constructors, in registration order."""
    return {
        "alerts": lambda user: AlertHistory(notifier=notifier, out=out),
        "theme": lambda user: ThemeManager(bus=bus, store=store, out=out),
        "transport": lambda user: TelemetryTransport(url=cfg.backend.ws_url),
        "dashboard": lambda user: ConsoleDashboard(user=user, store=store, out=out),
    }
