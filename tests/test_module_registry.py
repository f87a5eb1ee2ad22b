from __future__ import annotations

import asyncio
import json
import os

import pytest

from plantops.core.error_reporter import ErrorReporter
from plantops.core.modules import ModuleCapabilities, ModuleLifecycleRegistry
from plantops.core.notifications import NotificationChannel

from .helpers.fakes import FakeModule


PRIMARY = {"dashboard": "dashboard", "alerts": "alerts"}


def _registry(tmp_path, notifier=None):
    reporter = ErrorReporter(path=os.path.join(str(tmp_path), "logs", "errors.jsonl"))
    return ModuleLifecycleRegistry(primary_modules=PRIMARY, notifier=notifier, error_reporter=reporter), reporter


def _errors(reporter):
    if not os.path.exists(reporter.path):
        return []
    with open(reporter.path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


@pytest.mark.asyncio
async def test_teardown_twice_leaves_registry_empty(tmp_path):
    reg, _ = _registry(tmp_path)
    a, b = FakeModule("theme"), FakeModule("dashboard")
    reg.register("theme", a)
    reg.register("dashboard", b)

    assert await reg.teardown_all() == []
    assert len(reg) == 0
    assert await reg.teardown_all() == []
    assert len(reg) == 0
    assert (a.destroy_count, b.destroy_count) == (1, 1)


@pytest.mark.asyncio
async def test_failing_destroy_does_not_stop_teardown(tmp_path):
    reg, reporter = _registry(tmp_path)
    calls = []
    reg.register("alerts", FakeModule("alerts", calls, fail_destroy=True))
    reg.register("theme", FakeModule("theme", calls))

    failed = await reg.teardown_all()

    assert failed == ["alerts"]
    assert calls == ["alerts.destroy", "theme.destroy"]
    assert [e["error_code"] for e in _errors(reporter)] == ["teardown_failure"]


@pytest.mark.asyncio
async def test_failing_initialize_does_not_block_siblings(tmp_path):
    notifier = NotificationChannel()
    reg, reporter = _registry(tmp_path, notifier)
    bad, good = FakeModule("transport", fail_init=True), FakeModule("theme")
    reg.register("transport", bad)
    reg.register("theme", good)

    results = await reg.initialize_all()

    assert results == {"transport": False, "theme": True}
    assert good.ready is True
    assert [n.message for n in notifier.active()] == ["Error initializing transport"]
    assert _errors(reporter)[0]["error_code"] == "module_init_failure"


@pytest.mark.asyncio
async def test_view_primary_modules_are_lazy(tmp_path):
    reg, _ = _registry(tmp_path)
    dash, theme = FakeModule("dashboard"), FakeModule("theme")
    reg.register("dashboard", dash)
    reg.register("theme", theme)

    await reg.initialize_all()
    assert dash.init_count == 0 and theme.init_count == 1

    assert await reg.ensure_initialized("dashboard") is True
    assert (dash.init_count, dash.show_count) == (1, 1)

    # ready modules are only shown again
    assert await reg.ensure_initialized("dashboard") is True
    assert (dash.init_count, dash.show_count) == (1, 2)


@pytest.mark.asyncio
async def test_view_without_primary_module_is_trivially_ready(tmp_path):
    reg, _ = _registry(tmp_path)
    assert await reg.ensure_initialized("login") is True
    assert await reg.ensure_initialized("reports") is True


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_initialize(tmp_path):
    reg, _ = _registry(tmp_path)
    gate = asyncio.Event()
    dash = FakeModule("dashboard", gate=gate)
    reg.register("dashboard", dash)

    t1 = asyncio.ensure_future(reg.ensure_initialized("dashboard"))
    t2 = asyncio.ensure_future(reg.ensure_initialized("dashboard"))
    await asyncio.sleep(0)
    gate.set()

    assert await t1 is True and await t2 is True
    assert dash.init_count == 1


@pytest.mark.asyncio
async def test_stale_initialization_is_not_shown(tmp_path):
    reg, _ = _registry(tmp_path)
    gate = asyncio.Event()
    dash = FakeModule("dashboard", gate=gate)
    reg.register("dashboard", dash)
    current = {"view": "dashboard"}

    pending = asyncio.ensure_future(reg.ensure_initialized("dashboard", is_current=lambda: current["view"] == "dashboard"))
    await asyncio.sleep(0)
    current["view"] = "alerts"
    gate.set()

    assert await pending is False
    assert dash.ready is True
    assert dash.show_count == 0


@pytest.mark.asyncio
async def test_abandoned_waiter_does_not_cancel_module_start(tmp_path):
    reg, _ = _registry(tmp_path)
    gate = asyncio.Event()
    dash = FakeModule("dashboard", gate=gate)
    reg.register("dashboard", dash)

    waiter = asyncio.ensure_future(reg.ensure_initialized("dashboard"))
    await asyncio.sleep(0)
    waiter.cancel()
    await asyncio.wait({waiter})
    gate.set()

    assert await reg.ensure_initialized("dashboard") is True
    assert dash.init_count == 1


@pytest.mark.asyncio
async def test_teardown_during_initialize_discards_result(tmp_path):
    reg, _ = _registry(tmp_path)
    gate = asyncio.Event()
    dash = FakeModule("dashboard", gate=gate)
    reg.register("dashboard", dash)

    pending = asyncio.ensure_future(reg.ensure_initialized("dashboard"))
    await asyncio.sleep(0)
    await reg.teardown_all()

    assert await pending is False
    assert dash.show_count == 0
    assert dash.destroy_count == 1


@pytest.mark.asyncio
async def test_module_without_is_ready_initializes_each_time(tmp_path):
    reg, _ = _registry(tmp_path)
    count = {"n": 0}

    def init():
        count["n"] += 1

    reg.register("alerts", ModuleCapabilities(initialize=init))
    await reg.ensure_initialized("alerts")
    await reg.ensure_initialized("alerts")
    assert count["n"] == 2


@pytest.mark.asyncio
async def test_disconnect_all_reaches_transport_modules(tmp_path):
    reg, _ = _registry(tmp_path)
    transport = FakeModule("transport")
    reg.register("transport", transport)
    reg.register("plain", ModuleCapabilities())
    assert await reg.disconnect_all() == []
    assert transport.disconnect_count == 1


def test_duplicate_registration_rejected(tmp_path):
    reg, _ = _registry(tmp_path)
    reg.register("theme", FakeModule("theme"))
    with pytest.raises(ValueError):
        reg.register("theme", FakeModule("theme"))


def test_capabilities_from_object_only_picks_callables():
    class Partial:
        show = "not callable"

        def destroy(self):
            return None

    caps = ModuleCapabilities.from_object(Partial())
    assert caps.hooks() == ["destroy"]
