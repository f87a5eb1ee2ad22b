from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from plantops.core.auth.authenticator import AuthCheck, Authenticator, LoginResult
from plantops.core.config.models import AppConfig
from plantops.core.errors import LoginInProgress, ModuleInitFailure, PlantOpsError, StateTransitionError
from plantops.core.events import models as ev
from plantops.core.events.bus import EventBus
from plantops.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from plantops.core.events.redaction import redact
from plantops.core.events.registry import EventType
from plantops.core.modules.registry import ModuleLifecycleRegistry
from plantops.core.navigation.guard import Decision, DecisionKind, NavigationGuard, parse_fragment
from plantops.core.navigation.location import Location
from plantops.core.navigation.views import ViewRegistry
from plantops.core.notifications import NotificationChannel, NotificationSeverity
from plantops.core.ops_log import NullOpsLogger, OpsLogger
from plantops.core.session.models import SessionUser, SystemStatus, UserRole
from plantops.core.session.store import SessionStore
from plantops.core.shutdown import DEFAULT_PHASE_ORDER, ShutdownConfig, ShutdownSequence
from plantops.core.trace import current_trace_id, resolve_trace_id, trace_context


ModuleFactory = Callable[[SessionUser], Any]

_MAX_REDIRECTS = 3


class OrchestratorState(str, Enum):
    BOOTING = "BOOTING"
    LOGGED_OUT = "LOGGED_OUT"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED = "AUTHENTICATED"
    SHUTTING_DOWN = "SHUTTING_DOWN"


class Orchestrator:
    """
    Application lifecycle: boot, login/logout, routing and shutdown.

    Every external trigger (hash change, login, logout, shutdown signal)
    arrives as a bus event and runs under its own trace id. The orchestrator
    owns module lifetimes; the views and the location fragment belong to the
    shell and are only driven from here.
    """

    def __init__(
        self,
        *,
        cfg: AppConfig,
        store: SessionStore,
        authenticator: Authenticator,
        guard: NavigationGuard,
        views: ViewRegistry,
        registry: ModuleLifecycleRegistry,
        bus: EventBus,
        notifier: NotificationChannel,
        module_factories: Optional[Dict[str, ModuleFactory]] = None,
        location: Optional[Location] = None,
        ops: Optional[OpsLogger] = None,
        error_reporter: Any = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.cfg = cfg
        self.store = store
        self.authenticator = authenticator
        self.guard = guard
        self.views = views
        self.registry = registry
        self.bus = bus
        self.notifier = notifier
        self.module_factories: Dict[str, ModuleFactory] = dict(module_factories or {})
        self.location = location or Location()
        self.ops = ops or NullOpsLogger()
        self.error_reporter = error_reporter
        self.logger = logger or logging.getLogger("plantops.orchestrator")

        self.error_state: Optional[str] = None
        self._state = OrchestratorState.BOOTING
        self._subscribed = False
        self._nav_generation = 0
        self._page_task: Optional[asyncio.Task] = None
        self._shutdown_results: Optional[Dict[str, str]] = None

    # ---------- public API ----------
    @property
    def state(self) -> OrchestratorState:
        return self._state

    async def start(self, fragment: Optional[str] = None) -> OrchestratorState:
        """Restore the session, reconcile it and perform the initial navigation."""
        if self._state != OrchestratorState.BOOTING:
            return self._state
        self._subscribe()
        with trace_context(None):
            try:
                self.store.restore()
                check = await self.authenticator.check_current_auth()
                if check == AuthCheck.AUTHENTICATED:
                    user = self.store.user
                    assert user is not None
                    await self._start_modules(user)
                    self._set_state(OrchestratorState.AUTHENTICATED, {"source": "restored", "user": user.username})
                    self._render_authenticated_chrome(user)
                    initial = parse_fragment(fragment if fragment is not None else self.location.fragment)
                    await self.navigate(initial or self.guard.default_view)
                else:
                    self._set_state(OrchestratorState.LOGGED_OUT, {"check": check.value})
                    self._render_login_chrome()
                    await self.navigate(self.guard.login_view)
            except Exception as e:  # noqa: BLE001
                self._fail_start(e)
        return self._state

    async def submit_login(self, username: str, password: str) -> LoginResult:
        username = str(username or "").strip()
        password = str(password or "")
        if not username or not password:
            return LoginResult.failed("Please fill in all fields", "validation_error")
        if self._state in (OrchestratorState.BOOTING, OrchestratorState.SHUTTING_DOWN):
            return LoginResult.failed("The application is not ready.", "not_ready")
        if self.authenticator.login_pending():
            err = LoginInProgress()
            return LoginResult.failed(err.user_message, err.code)

        with trace_context(None) as trace_id:
            previous = self._state
            self._set_state(OrchestratorState.AUTHENTICATING, {"username": username})
            try:
                result = await self.authenticator.login(username, password)
            except Exception as e:  # noqa: BLE001
                self._report(e, subsystem="auth", context={"username": username})
                result = LoginResult.failed("Internal system error", "internal_error")

            if not result.success:
                if self._state == OrchestratorState.AUTHENTICATING:
                    self._set_state(previous, {"code": result.code})
                return result

            user = self.store.user
            assert user is not None and self.store.token is not None
            await self.bus.emit(ev.login_success(user=user.to_record(), token=self.store.token, trace_id=trace_id))
            return result

    async def logout(self, reason: str = "user") -> None:
        with trace_context(None):
            await self.authenticator.logout(reason=reason)

    async def navigate(self, view_id: str, *, force: bool = False) -> Decision:
        """
        Resolve `view_id` through the guard and apply the outcome. Returns the
        guard's first decision; redirects are followed.
        """
        return await self._navigate(view_id, force=force, depth=0)

    async def shutdown(self, reason: str = "shutdown") -> Dict[str, str]:
        """Idempotent; never raises. Leaves the persisted session in place."""
        if self._state == OrchestratorState.SHUTTING_DOWN:
            return dict(self._shutdown_results or {})
        trace_id = resolve_trace_id(current_trace_id())
        # phases may run in wrapper tasks; the bus must not wait on the task that asked for shutdown
        caller = asyncio.current_task()
        self._set_state(OrchestratorState.SHUTTING_DOWN, {"reason": reason})
        seq = ShutdownSequence(cfg=ShutdownConfig(phase_timeouts_seconds=dict(self.cfg.shutdown.phase_timeouts_seconds)), ops=self.ops, logger=self.logger)
        phases = {
            "disconnect_transport": self.registry.disconnect_all,
            "teardown_modules": self._teardown_modules,
            "reset_session_state": self._reset_transient_state,
            "stop_bus": lambda: self.bus.shutdown(exclude=[caller] if caller is not None else []),
        }
        self._shutdown_results = await seq.run([(name, phases[name]) for name in DEFAULT_PHASE_ORDER], reason=reason, trace_id=trace_id)
        return dict(self._shutdown_results)

    def status(self) -> Dict[str, Any]:
        user = self.store.user
        return {
            "state": self._state.value,
            "active_view": self.views.active_id,
            "fragment": self.location.fragment,
            "user": user.to_record() if user is not None else None,
            "theme": self.store.theme.value,
            "system_status": self.store.system_status.value,
            "modules": self.registry.names(),
            "error_state": self.error_state,
        }

    # ---------- event handlers ----------
    async def _on_login_success(self, event: BaseEvent) -> None:
        if self._state == OrchestratorState.SHUTTING_DOWN:
            return
        with trace_context(event.trace_id):
            user = self.store.user
            if user is None or not self.store.is_valid():
                self.logger.warning("login_success without a valid session; ignored")
                return
            try:
                if self._state != OrchestratorState.AUTHENTICATING:
                    self._set_state(OrchestratorState.AUTHENTICATING, {"source": "event"})
                await self._start_modules(user)
                self._set_state(OrchestratorState.AUTHENTICATED, {"user": user.username, "role": user.role.value})
            except Exception as e:  # noqa: BLE001
                await self._degrade(e)
                return
            self.error_state = None
            self._render_authenticated_chrome(user)
            await self.navigate(self.guard.default_view, force=True)

    async def _on_logout(self, event: BaseEvent) -> None:
        if self._state in (OrchestratorState.BOOTING, OrchestratorState.SHUTTING_DOWN):
            return
        with trace_context(event.trace_id):
            reason = str(event.payload.get("reason") or "user")
            if self._state != OrchestratorState.LOGGED_OUT:
                self._set_state(OrchestratorState.LOGGED_OUT, {"reason": reason})
            await self._teardown_modules()
            self.store.clear()
            self._render_login_chrome()
            await self.navigate(self.guard.login_view)

    async def _on_hash_change(self, event: BaseEvent) -> None:
        if self._state in (OrchestratorState.BOOTING, OrchestratorState.SHUTTING_DOWN):
            return
        fragment = parse_fragment(event.payload.get("fragment"))
        if not fragment:
            return
        with trace_context(event.trace_id):
            if self._state == OrchestratorState.AUTHENTICATED and self.store.is_expired():
                self.logger.info("Session expired during navigation to %s", fragment)
                await self.authenticator.logout(reason="expired")
                return
            await self.navigate(fragment)

    async def _on_shutdown_signal(self, event: BaseEvent) -> None:
        with trace_context(event.trace_id):
            await self.shutdown(reason=f"signal:{event.payload.get('signal', 'unknown')}")

    def _on_location_change(self, fragment: str) -> None:
        self.bus.publish(ev.hash_change(fragment=fragment, trace_id=current_trace_id()))

    # ---------- navigation ----------
    async def _navigate(self, requested: str, *, force: bool, depth: int) -> Decision:
        trace_id = resolve_trace_id(current_trace_id())
        decision = self.guard.resolve(requested, self.store.snapshot())
        self.ops.log(
            trace_id=trace_id,
            event="navigation",
            outcome=decision.kind.value,
            details={"requested": requested, "view": decision.view_id, "reason": decision.reason, "noop": decision.noop},
        )
        if decision.kind == DecisionKind.REDIRECT:
            self.location.replace(decision.view_id)
            if depth >= _MAX_REDIRECTS:
                self.logger.error("Redirect limit reached navigating to %s", requested)
                return decision
            await self._navigate(decision.view_id, force=force, depth=depth + 1)
            return decision
        if decision.noop and not force:
            return decision
        await self._show_page(decision.view_id)
        return decision

    async def _show_page(self, view_id: str) -> None:
        self._nav_generation += 1
        generation = self._nav_generation
        previous = self.views.activate(view_id)
        self.location.replace(view_id)
        self.bus.publish(
            BaseEvent(
                event_type=EventType.NAV_TRANSITION,
                trace_id=current_trace_id(),
                source_subsystem=SourceSubsystem.navigation,
                payload={"from": previous, "to": view_id},
            )
        )
        self._abandon_page_task()
        if self.registry.primary_for(view_id) is None:
            return

        def is_current() -> bool:
            return self._nav_generation == generation and self.views.is_active(view_id)

        task = asyncio.get_running_loop().create_task(self.registry.ensure_initialized(view_id, is_current=is_current), name=f"page:{view_id}")
        self._page_task = task
        # a superseded page task ends cancelled; waiting never raises for it
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            self._report(task.exception(), subsystem="modules", context={"view": view_id})

    def _abandon_page_task(self) -> None:
        task, self._page_task = self._page_task, None
        if task is not None and not task.done():
            task.cancel()

    # ---------- module lifetimes ----------
    async def _start_modules(self, user: SessionUser) -> None:
        # fresh instances per session
        await self._teardown_modules()
        for name, factory in self.module_factories.items():
            try:
                module = factory(user)
            except Exception as e:  # noqa: BLE001
                self._report(ModuleInitFailure(module=name, error=str(e)[:300]), subsystem="modules")
                self.notifier.notify(f"Error initializing {name}", NotificationSeverity.error)
                continue
            self.registry.register(name, module)
        await self.registry.initialize_all()

    async def _teardown_modules(self) -> None:
        self._abandon_page_task()
        await self.registry.teardown_all()

    def _reset_transient_state(self) -> None:
        self._abandon_page_task()
        self.notifier.clear()
        self.store.system_status = SystemStatus.disconnected

    # ---------- state ----------
    def _set_state(self, new_state: OrchestratorState, details: Dict[str, Any]) -> None:
        old = self._state
        allowed = self._allowed_transitions().get(old, set())
        if new_state != old and new_state not in allowed:
            raise StateTransitionError(f"Invalid transition {old.value} -> {new_state.value}", **{"from": old.value, "to": new_state.value})
        self._state = new_state
        self._record_transition(old, new_state, details)

    def _force_state(self, new_state: OrchestratorState, details: Dict[str, Any]) -> None:
        old = self._state
        self._state = new_state
        self._record_transition(old, new_state, {**details, "forced": True})

    def _record_transition(self, old: OrchestratorState, new: OrchestratorState, details: Dict[str, Any]) -> None:
        trace_id = resolve_trace_id(current_trace_id())
        self.ops.log(trace_id=trace_id, event="state.transition", outcome=new.value, details={"from": old.value, **redact(details)})
        self.logger.info("State %s -> %s", old.value, new.value)
        self.bus.publish(
            BaseEvent(
                event_type=EventType.STATE_TRANSITION,
                trace_id=trace_id,
                source_subsystem=SourceSubsystem.orchestrator,
                severity=EventSeverity.INFO,
                payload={"from": old.value, "to": new.value},
            )
        )

    def _allowed_transitions(self) -> Dict[OrchestratorState, set[OrchestratorState]]:
        return {
            OrchestratorState.BOOTING: {OrchestratorState.LOGGED_OUT, OrchestratorState.AUTHENTICATED, OrchestratorState.SHUTTING_DOWN},
            OrchestratorState.LOGGED_OUT: {OrchestratorState.AUTHENTICATING, OrchestratorState.SHUTTING_DOWN},
            OrchestratorState.AUTHENTICATING: {OrchestratorState.AUTHENTICATED, OrchestratorState.LOGGED_OUT, OrchestratorState.SHUTTING_DOWN},
            OrchestratorState.AUTHENTICATED: {OrchestratorState.AUTHENTICATING, OrchestratorState.LOGGED_OUT, OrchestratorState.SHUTTING_DOWN},
            OrchestratorState.SHUTTING_DOWN: set(),
        }

    # ---------- failure handling ----------
    def _fail_start(self, e: BaseException) -> None:
        err = self._report(e, subsystem="orchestrator", context={"phase": "start"})
        self.error_state = err.user_message if err is not None else "The application could not start."
        if self._state == OrchestratorState.BOOTING:
            self._force_state(OrchestratorState.LOGGED_OUT, {"error": type(e).__name__})
            self._render_login_chrome()
        self.notifier.notify(self.error_state, NotificationSeverity.error)

    async def _degrade(self, e: BaseException) -> None:
        """Fall back to logged out; the active view is left as it was."""
        self._report(e, subsystem="orchestrator", context={"phase": "login_success"})
        await self._teardown_modules()
        self.store.clear()
        self._force_state(OrchestratorState.LOGGED_OUT, {"error": type(e).__name__})
        self._render_login_chrome()
        self.notifier.notify("Internal system error", NotificationSeverity.error)

    def _report(self, e: BaseException, *, subsystem: str, context: Optional[Dict[str, Any]] = None) -> Optional[PlantOpsError]:
        self.logger.error("%s failure: %s", subsystem, e)
        if self.error_reporter is None:
            return e if isinstance(e, PlantOpsError) else None
        try:
            return self.error_reporter.report_exception(e, trace_id=resolve_trace_id(current_trace_id()), subsystem=subsystem, context=context or {})
        except Exception:  # noqa: BLE001
            self.logger.exception("Error reporter failed")
            return None

    # ---------- wiring ----------
    def _subscribe(self) -> None:
        if self._subscribed:
            return
        self.bus.subscribe(EventType.LOGIN_SUCCESS, self._on_login_success, priority=10)
        self.bus.subscribe(EventType.LOGOUT, self._on_logout, priority=10)
        self.bus.subscribe(EventType.HASH_CHANGE, self._on_hash_change, priority=10)
        self.bus.subscribe(EventType.SHUTDOWN_SIGNAL, self._on_shutdown_signal, priority=10)
        self.location.on_change(self._on_location_change)
        self._subscribed = True

    def _render_authenticated_chrome(self, user: SessionUser) -> None:
        record = user.to_record()
        record["role_label"] = "Supervisor" if user.role == UserRole.supervisor else "Operator"
        try:
            self.views.renderer.show_authenticated_chrome(record)
        except Exception:  # noqa: BLE001
            self.logger.exception("Renderer show_authenticated_chrome failed")

    def _render_login_chrome(self) -> None:
        try:
            self.views.renderer.show_login_chrome()
        except Exception:  # noqa: BLE001
            self.logger.exception("Renderer show_login_chrome failed")
