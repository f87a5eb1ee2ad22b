from __future__ import annotations

import asyncio
import logging
import os
import shlex
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from plantops.core.auth import Authenticator, FallbackCredentialTable, RemoteAuthClient
from plantops.core.config.models import AppConfig
from plantops.core.config.paths import ConfigFsPaths
from plantops.core.error_reporter import ErrorReporter, ErrorReporterConfig
from plantops.core.events.bus import EventBus
from plantops.core.events.subscribers import CoreEventJsonlSubscriber
from plantops.core.modules.registry import ModuleLifecycleRegistry
from plantops.core.navigation.guard import NavigationGuard
from plantops.core.navigation.location import Location
from plantops.core.navigation.views import ViewRegistry
from plantops.core.notifications import Notification, NotificationChannel
from plantops.core.ops_log import OpsLogger
from plantops.core.orchestrator import Orchestrator
from plantops.core.persistence.kv_store import JsonFileKeyValueStore, KeyValueStore
from plantops.core.session.store import SessionStore
from plantops.shell.modules import Out, build_module_factories


class ConsoleRenderer:
    """Draws view changes and chrome as plain console lines."""

    def __init__(self, out: Out = print):
        self.out = out

    def show_view(self, view_id: str) -> None:
        self.out(f"== {view_id} ==")

    def hide_view(self, view_id: str) -> None:
        return

    def highlight_nav(self, view_id: Optional[str]) -> None:
        return

    def show_authenticated_chrome(self, user: Dict[str, Any]) -> None:
        self.out(f"Signed in as {user.get('username', '')} ({user.get('role_label', '')})")

    def show_login_chrome(self) -> None:
        self.out("Please sign in: login <user> <password>")


def notification_printer(out: Out = print) -> Callable[[Notification], None]:
    def _sink(n: Notification) -> None:
        out(f"[{n.icon}] {n.message}")

    return _sink


@dataclass
class ConsoleRuntime:
    cfg: AppConfig
    bus: EventBus
    store: SessionStore
    notifier: NotificationChannel
    authenticator: Authenticator
    orchestrator: Orchestrator


def build_runtime(
    cfg: AppConfig,
    *,
    fs: ConfigFsPaths,
    out: Out = print,
    kv: Optional[KeyValueStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    logger: Optional[logging.Logger] = None,
) -> ConsoleRuntime:
    """Wire every component with explicit dependencies."""
    log = logger or logging.getLogger("plantops")
    logs_dir = fs.resolve(cfg.logging.log_dir)

    error_reporter = ErrorReporter(path=os.path.join(logs_dir, "errors.jsonl"), cfg=ErrorReporterConfig(include_tracebacks=cfg.logging.include_tracebacks))
    ops = OpsLogger(path=os.path.join(logs_dir, "ops.jsonl"))
    bus = EventBus(logger=log.getChild("events"), error_reporter=error_reporter)
    bus.subscribe("*", CoreEventJsonlSubscriber(path=os.path.join(logs_dir, "events", "core_events.jsonl")), priority=100)

    store = SessionStore(
        kv=kv if kv is not None else JsonFileKeyValueStore(fs.resolve(cfg.session.storage_path), logger=log.getChild("persistence")),
        cfg=cfg.session,
        logger=log.getChild("session"),
    )
    notifier = NotificationChannel(cfg=cfg.notifications, bus=bus, logger=log.getChild("notifications"))
    notifier.add_sink(notification_printer(out))

    authenticator = Authenticator(
        store=store,
        bus=bus,
        remote=RemoteAuthClient(cfg=cfg.backend, transport=transport, logger=log.getChild("auth.remote")),
        fallback=FallbackCredentialTable(cfg.auth.fallback_users) if cfg.auth.fallback_enabled else None,
        notifier=notifier,
        logger=log.getChild("auth"),
    )
    views = ViewRegistry.from_config(cfg.navigation, renderer=ConsoleRenderer(out), logger=log.getChild("navigation"))
    orchestrator = Orchestrator(
        cfg=cfg,
        store=store,
        authenticator=authenticator,
        guard=NavigationGuard(views=views, cfg=cfg.navigation, logger=log.getChild("navigation.guard")),
        views=views,
        registry=ModuleLifecycleRegistry(
            primary_modules=cfg.navigation.primary_modules,
            notifier=notifier,
            error_reporter=error_reporter,
            logger=log.getChild("modules"),
        ),
        bus=bus,
        notifier=notifier,
        module_factories=build_module_factories(cfg=cfg, bus=bus, store=store, notifier=notifier, out=out),
        location=Location(),
        ops=ops,
        error_reporter=error_reporter,
        logger=log.getChild("orchestrator"),
    )
    return ConsoleRuntime(cfg=cfg, bus=bus, store=store, notifier=notifier, authenticator=authenticator, orchestrator=orchestrator)


HELP = "Commands: login <user> <password> | logout | go <view> | #<view> | theme | status | notifications | help | quit"


class ConsoleShell:
    def __init__(self, runtime: ConsoleRuntime, *, out: Out = print, read: Callable[[str], str] = input):
        self.rt = runtime
        self.out = out
        self.read = read

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Read commands until quit, end of input or `stop` is set."""
        loop = asyncio.get_running_loop()
        lines: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        turn = threading.Semaphore(0)

        def reader() -> None:
            while True:
                try:
                    line: Optional[str] = self.read("> ")
                except (EOFError, KeyboardInterrupt):
                    line = None
                try:
                    loop.call_soon_threadsafe(lines.put_nowait, line)
                except RuntimeError:
                    return
                if line is None:
                    return
                turn.acquire()

        self.out(HELP)
        threading.Thread(target=reader, name="console-input", daemon=True).start()
        stop_wait = asyncio.ensure_future((stop or asyncio.Event()).wait())
        try:
            while True:
                get = asyncio.ensure_future(lines.get())
                done, _ = await asyncio.wait({get, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
                if stop_wait in done:
                    get.cancel()
                    return
                line = get.result()
                if line is None or not await self.handle(line):
                    return
                turn.release()
        finally:
            stop_wait.cancel()

    async def handle(self, line: str) -> bool:
        """Run one command; False means the shell should exit."""
        text = (line or "").strip()
        if not text:
            return True
        try:
            parts = shlex.split(text)
        except ValueError as e:
            self.out(f"Could not parse command: {e}")
            return True
        cmd, args = parts[0], parts[1:]
        orch = self.rt.orchestrator

        if cmd in ("quit", "exit"):
            return False
        if cmd == "help":
            self.out(HELP)
        elif cmd == "login":
            if len(args) != 2:
                self.out("Usage: login <user> <password>")
                return True
            res = await orch.submit_login(args[0], args[1])
            if not res.success:
                self.out(res.error or "Login failed")
        elif cmd == "logout":
            await orch.logout()
        elif cmd == "go" or cmd.startswith("#"):
            if cmd == "go" and not args:
                self.out("Usage: go <view>")
                return True
            await self._go(args[0] if cmd == "go" else cmd)
        elif cmd == "theme":
            self.rt.authenticator.toggle_theme()
        elif cmd == "status":
            for k, v in orch.status().items():
                self.out(f"{k}: {v}")
        elif cmd == "notifications":
            active = self.rt.notifier.active()
            if not active:
                self.out("No notifications")
            for n in active:
                self.out(f"[{n.icon}] {n.message}")
        else:
            self.out(f"Unknown command: {cmd}. {HELP}")
        return True

    async def _go(self, target: str) -> None:
        orch = self.rt.orchestrator
        if not orch.location.assign(target):
            self.out(f"Already at #{orch.location.fragment}")
            return
        await self.rt.bus.drain()
