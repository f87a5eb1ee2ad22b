from __future__ import annotations

import json
import os

from plantops.core.events.models import BaseEvent
from plantops.core.events.redaction import redact


class CoreEventJsonlSubscriber:
    """
    Writes all events to logs/events/core_events.jsonl (redacted payload only).
    """

    def __init__(self, *, path: str = os.path.join("logs", "events", "core_events.jsonl")):
        self.path = path
        os.makedirs(os.path.dirname(self.path), exist_ok=True)

    def __call__(self, ev: BaseEvent) -> None:
        line = json.dumps(redact(ev.model_dump(mode="json")), ensure_ascii=False)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
