from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from plantops.core.errors import ModuleInitFailure, TeardownFailure
from plantops.core.modules.capabilities import ModuleCapabilities
from plantops.core.notifications import NotificationChannel, NotificationSeverity
from plantops.core.trace import current_trace_id


@dataclass
class ModuleEntry:
    name: str
    instance: Any
    caps: ModuleCapabilities
    lazy: bool = False
    destroyed: bool = False
    init_task: Optional[asyncio.Task] = field(default=None, repr=False)


class ModuleLifecycleRegistry:
    """
    Named feature modules with uniform start/show/stop semantics.

    - at most one initialize() in flight per module; concurrent callers share it
    - initialize() failures are reported and notified, never raised
    - teardown_all() destroys in registration order, isolates failures and
      leaves the registry empty; calling it again is a no-op
    """

    def __init__(
        self,
        *,
        primary_modules: Optional[Dict[str, str]] = None,
        notifier: Optional[NotificationChannel] = None,
        error_reporter: Any = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.primary_modules: Dict[str, str] = dict(primary_modules or {})
        self.notifier = notifier
        self.error_reporter = error_reporter
        self.logger = logger or logging.getLogger("plantops.modules")
        self._entries: Dict[str, ModuleEntry] = {}

    # ---- registration ----
    def register(self, name: str, module: Any) -> ModuleEntry:
        name = str(name)
        if name in self._entries:
            raise ValueError(f"module already registered: {name}")
        entry = ModuleEntry(
            name=name,
            instance=module,
            caps=ModuleCapabilities.from_object(module),
            lazy=name in set(self.primary_modules.values()),
        )
        self._entries[name] = entry
        self.logger.info("Registered module %s (hooks: %s)", name, ",".join(entry.caps.hooks()) or "none")
        return entry

    def get(self, name: str) -> Any:
        entry = self._entries.get(name)
        return entry.instance if entry is not None else None

    def names(self) -> List[str]:
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def primary_for(self, view_id: str) -> Optional[str]:
        return self.primary_modules.get(view_id)

    # ---- start ----
    async def initialize_all(self, *, include_lazy: bool = False) -> Dict[str, bool]:
        """
        Initialize registered modules in order. View-primary modules are lazy
        by default and start on first navigation to their view.
        """
        results: Dict[str, bool] = {}
        for entry in list(self._entries.values()):
            if entry.lazy and not include_lazy:
                continue
            results[entry.name] = await self._ensure_ready(entry)
        return results

    async def ensure_initialized(self, view_id: str, *, is_current: Optional[Callable[[], bool]] = None) -> bool:
        """
        Start (if needed) and show the primary module of `view_id`.

        `is_current` is checked after initialization; when it returns False the
        result is stale (the user navigated away) and show() is skipped.
        """
        name = self.primary_for(view_id)
        if name is None:
            return True
        entry = self._entries.get(name)
        if entry is None:
            self.logger.error("Module %s for view %s is not registered", name, view_id)
            return False
        ok = await self._ensure_ready(entry)
        if not ok:
            return False
        if entry.destroyed or (is_current is not None and not is_current()):
            self.logger.info("Discarding stale initialization of %s for view %s", name, view_id)
            return False
        self._show(entry)
        return True

    # ---- stop ----
    async def teardown_all(self) -> List[str]:
        """Returns the names whose destroy() failed."""
        entries = list(self._entries.values())
        self._entries.clear()
        failed: List[str] = []
        for entry in entries:
            if entry.destroyed:
                continue
            entry.destroyed = True
            if entry.init_task is not None and not entry.init_task.done():
                entry.init_task.cancel()
            if entry.caps.destroy is None:
                continue
            try:
                await _maybe_await(entry.caps.destroy())
            except Exception as e:  # noqa: BLE001
                failed.append(entry.name)
                self._report(TeardownFailure(module=entry.name, error=str(e)[:300]), e)
        if entries:
            self.logger.info("Teardown complete (%d modules, %d failures)", len(entries), len(failed))
        return failed

    async def disconnect_all(self) -> List[str]:
        """Best-effort disconnect of transport-like modules; returns failures."""
        failed: List[str] = []
        for entry in list(self._entries.values()):
            if entry.caps.disconnect is None:
                continue
            try:
                await _maybe_await(entry.caps.disconnect())
            except Exception as e:  # noqa: BLE001
                failed.append(entry.name)
                self.logger.warning("Disconnect of %s failed: %s", entry.name, e)
        return failed

    # ---- internals ----
    def _is_ready(self, entry: ModuleEntry) -> bool:
        if entry.caps.is_ready is None:
            return False
        try:
            return bool(entry.caps.is_ready())
        except Exception:  # noqa: BLE001
            self.logger.exception("is_ready() of %s failed; assuming not ready", entry.name)
            return False

    async def _ensure_ready(self, entry: ModuleEntry) -> bool:
        """Await the module's shared init task; a cancelled waiter gets False only once the module is destroyed."""
        if entry.destroyed:
            return False
        if self._is_ready(entry):
            return True
        if entry.caps.initialize is None:
            return True
        if entry.init_task is None:
            entry.init_task = asyncio.get_running_loop().create_task(self._run_initialize(entry), name=f"module-init:{entry.name}")
            entry.init_task.add_done_callback(lambda _t, e=entry: setattr(e, "init_task", None))
        # shield: a superseded navigation stops waiting without cancelling the module's own start
        try:
            return await asyncio.shield(entry.init_task)
        except asyncio.CancelledError:
            if entry.destroyed:
                return False
            raise

    async def _run_initialize(self, entry: ModuleEntry) -> bool:
        assert entry.caps.initialize is not None
        self.logger.info("Initializing module %s", entry.name)
        try:
            await _maybe_await(entry.caps.initialize())
        except Exception as e:  # noqa: BLE001
            self._report(ModuleInitFailure(module=entry.name, error=str(e)[:300]), e)
            if self.notifier is not None:
                self.notifier.notify(f"Error initializing {entry.name}", NotificationSeverity.error)
            return False
        self.logger.info("Module %s initialized", entry.name)
        return True

    def _show(self, entry: ModuleEntry) -> None:
        if entry.caps.show is None:
            return
        try:
            entry.caps.show()
        except Exception as e:  # noqa: BLE001
            self._report(ModuleInitFailure(f"Module {entry.name} could not be displayed.", module=entry.name, error=str(e)[:300]), e)

    def _report(self, err: Any, exc: BaseException) -> None:
        self.logger.error("%s: %s", err.code, err.context)
        if self.error_reporter is not None:
            try:
                self.error_reporter.report_exception(err, trace_id=current_trace_id("modules") or "modules", subsystem="modules", context={"cause": type(exc).__name__})
            except Exception:  # noqa: BLE001
                self.logger.exception("Error reporter failed")


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result
