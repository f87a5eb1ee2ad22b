from __future__ import annotations

import asyncio
import collections
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from plantops.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from plantops.core.events.redaction import redact
from plantops.core.events.registry import EventType
from plantops.core.events.stats import StatsCounter


EventHandler = Callable[[BaseEvent], Any]


class EventBusConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    shutdown_grace_seconds: float = Field(default=2.0, ge=0.0, le=60.0)
    keep_recent: int = Field(default=200, ge=10, le=10_000)


@dataclass
class _Sub:
    event_type: str
    handler: EventHandler
    priority: int


class EventBus:
    """
    In-process event bus for a single event loop.

    - publish() is fire-and-forget: plain handlers run inline, coroutine
      handlers are scheduled as tasks on the running loop and tracked
    - emit() awaits every matching handler in priority order
    - handler failures are isolated (caught) and re-published as error.raised
    """

    def __init__(self, *, cfg: Optional[EventBusConfig] = None, logger: Optional[logging.Logger] = None, error_reporter: Any = None):
        self.cfg = cfg or EventBusConfig()
        self.logger = logger or logging.getLogger("plantops.events")
        self.error_reporter = error_reporter

        self._subs: List[_Sub] = []
        self._accepting = True
        self._pending: Set[asyncio.Task] = set()
        self._stats = StatsCounter()
        self._recent_events: Deque[Dict[str, Any]] = collections.deque(maxlen=int(self.cfg.keep_recent))

    def enabled(self) -> bool:
        return bool(self.cfg.enabled) and self._accepting

    def subscribe(self, event_type: str | EventType, handler: EventHandler, priority: int = 50) -> None:
        """
        event_type supports:
        - exact match ("auth.logout")
        - prefix match ("auth.*")
        - wildcard all ("*")
        """
        if not callable(handler):
            raise ValueError("handler must be callable")
        if isinstance(event_type, EventType):
            event_type = event_type.value
        self._subs.append(_Sub(event_type=str(event_type), handler=handler, priority=int(priority)))
        # stable sort keeps registration order among equal priorities
        self._subs.sort(key=lambda s: s.priority)
        self._stats.set_subscribers(len(self._subs))

    def unsubscribe(self, handler: EventHandler) -> int:
        keep = [s for s in self._subs if s.handler != handler]
        removed = len(self._subs) - len(keep)
        self._subs = keep
        self._stats.set_subscribers(len(self._subs))
        return removed

    def publish(self, ev: BaseEvent) -> bool:
        if not self._accept(ev):
            return False
        delivered = 0
        for s in self._matching(ev):
            delivered += 1
            try:
                result = s.handler(ev)
            except Exception as e:  # noqa: BLE001
                self._handler_failed(s.handler, ev, e)
                continue
            if inspect.isawaitable(result):
                self._schedule(s.handler, ev, result)
        self._stats.inc_delivered(delivered)
        return True

    async def emit(self, ev: BaseEvent) -> bool:
        if not self._accept(ev):
            return False
        delivered = 0
        for s in self._matching(ev):
            delivered += 1
            try:
                result = s.handler(ev)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:  # noqa: BLE001
                self._handler_failed(s.handler, ev, e)
        self._stats.inc_delivered(delivered)
        return True

    async def drain(self, timeout: Optional[float] = None, *, exclude: Iterable[asyncio.Task] = ()) -> None:
        """
        Wait until every task scheduled by publish() has finished. The caller's
        own task and any task in `exclude` are not waited on.
        """
        skip = {asyncio.current_task(), *exclude}
        while True:
            pending = [t for t in self._pending if t not in skip]
            if not pending:
                return
            done, _ = await asyncio.wait(pending, timeout=timeout)
            if timeout is not None and len(done) < len(pending):
                return

    def get_stats(self) -> Dict[str, Any]:
        st = self._stats.snapshot()
        return {
            "enabled": self.enabled(),
            "published_total": st.published_total,
            "rejected_total": st.rejected_total,
            "delivered_total": st.delivered_total,
            "handler_errors_total": st.handler_errors_total,
            "pending_tasks": len(self._pending),
            "subscribers": st.subscribers,
            "per_type_published": st.per_type_published,
            "recent": list(self._recent_events)[:50],
        }

    def list_subscribers(self) -> List[Dict[str, Any]]:
        return [{"event_type": s.event_type, "priority": s.priority, "handler": getattr(s.handler, "__name__", "handler")} for s in self._subs]

    def dump_recent(self, n: int = 200) -> List[Dict[str, Any]]:
        return list(self._recent_events)[: max(1, int(n))]

    async def shutdown(self, grace_seconds: Optional[float] = None, *, exclude: Iterable[asyncio.Task] = ()) -> None:
        """Stop accepting events, drain, then cancel what is left. `exclude` is never waited on or cancelled."""
        self._accepting = False
        if grace_seconds is None:
            grace_seconds = float(self.cfg.shutdown_grace_seconds)
        skip = {asyncio.current_task(), *exclude}
        await self.drain(timeout=max(0.0, float(grace_seconds)), exclude=skip)
        for task in list(self._pending):
            if task not in skip:
                task.cancel()
        self._subs = []
        self._stats.set_subscribers(0)

    # ---- internals ----
    def _accept(self, ev: BaseEvent) -> bool:
        if not self._accepting or not self.cfg.enabled:
            self._stats.inc_rejected(1)
            return False
        self._stats.inc_published(ev.event_type)
        self._recent_events.appendleft(redact(ev.model_dump(mode="json")))
        return True

    def _matching(self, ev: BaseEvent) -> List[_Sub]:
        return [s for s in list(self._subs) if _match(s.event_type, ev.event_type)]

    def _schedule(self, handler: EventHandler, ev: BaseEvent, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning("No running loop for async handler %s on %s; dropped", getattr(handler, "__name__", "handler"), ev.event_type)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = loop.create_task(_await(awaitable), name=f"event:{ev.event_type}")
        self._pending.add(task)
        self._stats.set_pending(len(self._pending))

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            self._stats.set_pending(len(self._pending))
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                self._handler_failed(handler, ev, exc)

        task.add_done_callback(_done)

    def _handler_failed(self, handler: EventHandler, ev: BaseEvent, e: BaseException) -> None:
        self._stats.inc_handler_error(1)
        name = getattr(handler, "__name__", "handler")
        self.logger.error("Event handler %s failed on %s: %s", name, ev.event_type, e)
        if self.error_reporter is not None:
            try:
                self.error_reporter.report_exception(e, trace_id=ev.trace_id or "eventbus", subsystem="events", context={"event_type": ev.event_type})
            except Exception:  # noqa: BLE001
                self.logger.exception("Error reporter failed")
        if ev.event_type == EventType.ERROR_RAISED.value:
            return
        self.publish(
            BaseEvent(
                event_type=EventType.ERROR_RAISED,
                trace_id=ev.trace_id,
                source_subsystem=SourceSubsystem.events,
                severity=EventSeverity.ERROR,
                payload={"handler": name, "event_type": ev.event_type, "error": str(e)[:500]},
            )
        )


async def _await(awaitable: Any) -> Any:
    return await awaitable


def _match(subscribed: str, event_type: str) -> bool:
    subscribed = str(subscribed)
    if subscribed == "*":
        return True
    if subscribed.endswith(".*"):
        return str(event_type).startswith(subscribed[:-1])
    return subscribed == event_type
