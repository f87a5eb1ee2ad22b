from __future__ import annotations

import asyncio

import pytest

from plantops.core.config.models import NotificationsConfig
from plantops.core.events.bus import EventBus
from plantops.core.notifications import NotificationChannel, NotificationSeverity

from .helpers.fakes import FakeClock


def test_notify_reaches_sinks_and_bus():
    bus = EventBus()
    events = []
    bus.subscribe("notification.created", lambda e: events.append(e.payload))
    ch = NotificationChannel(bus=bus, clock=FakeClock().time)
    printed = []
    ch.add_sink(lambda n: printed.append((n.icon, n.message)))

    n = ch.notify("Saved", "success")

    assert n is not None and n.severity == NotificationSeverity.success
    assert printed == [("check-circle", "Saved")]
    assert events[0]["severity"] == "success"


@pytest.mark.parametrize(
    "severity,icon",
    [("success", "check-circle"), ("error", "exclamation-circle"), ("warning", "exclamation-triangle"), ("info", "info-circle"), ("bogus", "info-circle")],
)
def test_icon_mapping(severity, icon):
    ch = NotificationChannel(clock=FakeClock().time)
    assert ch.notify("x", severity).icon == icon


def test_failing_sink_never_propagates():
    ch = NotificationChannel(clock=FakeClock().time)
    seen = []

    def bad(_n):  # noqa: ANN001
        raise RuntimeError("render failed")

    ch.add_sink(bad)
    ch.add_sink(lambda n: seen.append(n.message))
    assert ch.notify("still delivered") is not None
    assert seen == ["still delivered"]


def test_expiry_by_clock_without_loop():
    clock = FakeClock()
    ch = NotificationChannel(cfg=NotificationsConfig(duration_seconds=5.0), clock=clock.time)
    ch.notify("first")
    clock.advance(3)
    ch.notify("second")
    clock.advance(3)
    assert [n.message for n in ch.active()] == ["second"]


def test_dismiss_and_max_visible():
    ch = NotificationChannel(cfg=NotificationsConfig(max_visible=2), clock=FakeClock().time)
    a = ch.notify("a")
    ch.notify("b")
    ch.notify("c")
    assert [n.message for n in ch.active()] == ["b", "c"]
    assert ch.dismiss(a.id) is False
    assert ch.dismiss(ch.active()[0].id) is True
    assert [n.message for n in ch.active()] == ["c"]


@pytest.mark.asyncio
async def test_expiry_timer_on_running_loop():
    ch = NotificationChannel(cfg=NotificationsConfig(duration_seconds=0.01))
    ch.notify("short lived")
    await asyncio.sleep(0.05)
    assert ch.active() == []


def test_remove_sink():
    ch = NotificationChannel(clock=FakeClock().time)
    seen = []
    sink = seen.append
    ch.add_sink(sink)
    ch.remove_sink(sink)
    ch.notify("nobody listens")
    assert seen == []
