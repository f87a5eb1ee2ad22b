from __future__ import annotations

import asyncio
import json
import os
import time
import traceback
from dataclasses import dataclass
from typing import Any, Dict, Optional

from plantops.core.errors import PlantOpsError, RemoteUnavailable, Severity
from plantops.core.events.redaction import redact


@dataclass
class ErrorReporterConfig:
    include_tracebacks: bool = False


class ErrorReporter:
    def __init__(self, *, path: str = os.path.join("logs", "errors.jsonl"), cfg: Optional[ErrorReporterConfig] = None):
        self.path = path
        self.cfg = cfg or ErrorReporterConfig()
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)

    def report_exception(self, exc: BaseException, *, trace_id: str, subsystem: str, context: Optional[Dict[str, Any]] = None) -> PlantOpsError:
        err = normalize_exception(exc, subsystem=subsystem, context=context or {})
        self.write_error(err, trace_id=trace_id, subsystem=subsystem, internal_exc=exc)
        return err

    def write_error(self, err: PlantOpsError, *, trace_id: str, subsystem: str, internal_exc: Optional[BaseException] = None) -> None:
        entry: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "trace_id": trace_id,
            "subsystem": subsystem,
            "error_code": err.code,
            "severity": err.severity.value,
            "recoverable": bool(err.recoverable),
            "user_message": err.user_message,
            "safe_context": redact(err.context or {}),
        }
        if self.cfg.include_tracebacks and internal_exc is not None:
            entry["internal_context"] = {"traceback": "".join(traceback.format_exception(type(internal_exc), internal_exc, internal_exc.__traceback__, limit=30))}
        line = json.dumps(entry, ensure_ascii=False, default=str)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")


def normalize_exception(exc: BaseException, *, subsystem: str, context: Dict[str, Any]) -> PlantOpsError:
    if isinstance(exc, PlantOpsError):
        if context:
            exc.context = {**(exc.context or {}), **context}
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return RemoteUnavailable(**{**context, "error": type(exc).__name__, "subsystem": subsystem})
    return PlantOpsError(
        "internal_error",
        "Something went wrong.",
        severity=Severity.ERROR,
        recoverable=True,
        context={**context, "error": type(exc).__name__, "subsystem": subsystem},
    )
