from __future__ import annotations

import os

import pytest

from plantops.core.config.models import AppConfig
from plantops.core.config.paths import ConfigFsPaths
from plantops.core.orchestrator import OrchestratorState
from plantops.shell.console import ConsoleShell, build_runtime

from .helpers.harness import backend_down


def _shell(tmp_path):
    lines = []
    fs = ConfigFsPaths(root=str(tmp_path))
    rt = build_runtime(AppConfig(), fs=fs, out=lines.append, transport=backend_down())
    return ConsoleShell(rt, out=lines.append), rt, lines


@pytest.mark.asyncio
async def test_login_navigate_theme_and_logout(tmp_path):
    shell, rt, lines = _shell(tmp_path)
    await rt.orchestrator.start()

    assert await shell.handle("login supervisor sup123") is True
    assert rt.orchestrator.state == OrchestratorState.AUTHENTICATED
    assert "Signed in as supervisor (Supervisor)" in lines
    assert any(line.startswith("[dashboard] Supervisor Demo") for line in lines)

    await shell.handle("#alerts")
    assert rt.orchestrator.views.active_id == "alerts"
    await shell.handle("go alerts")
    assert "Already at #alerts" in lines

    await shell.handle("theme")
    assert "[theme] supervisor" in lines

    await shell.handle("logout")
    assert rt.orchestrator.state == OrchestratorState.LOGGED_OUT
    assert os.path.exists(os.path.join(str(tmp_path), "runtime", "session.json"))
    await rt.orchestrator.shutdown()


@pytest.mark.asyncio
async def test_operator_theme_refusal_is_printed_with_icon(tmp_path):
    shell, rt, lines = _shell(tmp_path)
    await rt.orchestrator.start()
    await shell.handle("login operador op123")

    await shell.handle("theme")
    assert "[exclamation-triangle] Only supervisors can change the theme" in lines

    await shell.handle("notifications")
    assert lines.count("[exclamation-triangle] Only supervisors can change the theme") == 2
    await rt.orchestrator.shutdown()


@pytest.mark.asyncio
async def test_bad_input_and_quit(tmp_path):
    shell, rt, lines = _shell(tmp_path)
    await rt.orchestrator.start()

    assert await shell.handle("login onlyuser") is True
    assert "Usage: login <user> <password>" in lines
    assert await shell.handle("login operador wrong") is True
    assert "Invalid credentials or backend unavailable." in lines
    assert await shell.handle("dance") is True
    assert any(line.startswith("Unknown command: dance") for line in lines)
    assert await shell.handle("quit") is False
    await rt.orchestrator.shutdown()


@pytest.mark.asyncio
async def test_events_are_journaled(tmp_path):
    shell, rt, _ = _shell(tmp_path)
    await rt.orchestrator.start()
    await shell.handle("login operador op123")
    path = os.path.join(str(tmp_path), "logs", "events", "core_events.jsonl")
    with open(path, encoding="utf-8") as f:
        text = f.read()
    assert "auth.login_success" in text
    assert "op123" not in text
    await rt.orchestrator.shutdown()
