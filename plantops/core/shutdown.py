from __future__ import annotations

import asyncio
import inspect
import logging
import signal
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from plantops.core.events import models as ev
from plantops.core.events.bus import EventBus
from plantops.core.ops_log import NullOpsLogger, OpsLogger


PhaseFn = Callable[[], Union[None, Awaitable[Any]]]

DEFAULT_PHASE_ORDER: Tuple[str, ...] = ("disconnect_transport", "teardown_modules", "reset_session_state", "stop_bus")


@dataclass
class ShutdownConfig:
    phase_timeouts_seconds: Dict[str, float] = field(default_factory=dict)


class ShutdownSequence:
    """
    Deterministic teardown with per-phase timeouts.

    A phase that fails or times out is logged and the sequence continues;
    run() itself never raises.
    """

    def __init__(self, *, cfg: Optional[ShutdownConfig] = None, ops: Optional[OpsLogger] = None, logger: Optional[logging.Logger] = None):
        self.cfg = cfg or ShutdownConfig()
        self.ops = ops or NullOpsLogger()
        self.logger = logger or logging.getLogger("plantops.shutdown")

    async def run(self, phases: List[Tuple[str, PhaseFn]], *, reason: str, trace_id: str) -> Dict[str, str]:
        self.ops.log(trace_id=trace_id, event="shutdown_begin", outcome="start", details={"reason": reason})
        results: Dict[str, str] = {}
        for name, fn in phases:
            results[name] = await self._phase(trace_id, name, fn, timeout=self._to(name, 5.0))
        self.ops.log(trace_id=trace_id, event="shutdown_complete", outcome="ok", details={"phases": results})
        self.logger.info("Shutdown complete (%s): %s", reason, results)
        return results

    def _to(self, key: str, default: float) -> float:
        try:
            return float((self.cfg.phase_timeouts_seconds or {}).get(key, default))
        except (TypeError, ValueError):
            return float(default)

    async def _phase(self, trace_id: str, name: str, fn: PhaseFn, *, timeout: float) -> str:
        t0 = time.time()
        self.ops.log(trace_id=trace_id, event="shutdown_phase_start", outcome=name, details={"timeout": timeout})
        outcome = "ok"
        err: Optional[str] = None
        try:
            result = fn()
            if inspect.isawaitable(result):
                await asyncio.wait_for(result, timeout=max(0.1, float(timeout)))
        except asyncio.TimeoutError:
            outcome, err = "timeout", "timeout"
        except Exception as e:  # noqa: BLE001
            outcome, err = "fail", str(e)[:300]

        dt = time.time() - t0
        if outcome == "ok":
            self.ops.log(trace_id=trace_id, event="shutdown_phase_ok", outcome=name, details={"seconds": dt})
        else:
            self.logger.warning("Shutdown phase %s %s: %s", name, outcome, err)
            self.ops.log(trace_id=trace_id, event="shutdown_phase_fail", outcome=name, details={"seconds": dt, "error": err})
        return outcome


def install_signal_handlers(bus: EventBus, *, loop: Optional[asyncio.AbstractEventLoop] = None, logger: Optional[logging.Logger] = None) -> List[str]:
    """
    Route SIGINT/SIGTERM into a shutdown.signal event. Returns the names of
    the signals that were hooked (none on platforms without loop signal support).
    """
    log = logger or logging.getLogger("plantops.shutdown")
    loop = loop or asyncio.get_running_loop()
    installed: List[str] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: bus.publish(ev.shutdown_signal(signal_name=s.name)))
        except (NotImplementedError, RuntimeError, ValueError) as e:
            log.info("Signal %s not routed: %s", sig.name, e)
            continue
        installed.append(sig.name)
    return installed
