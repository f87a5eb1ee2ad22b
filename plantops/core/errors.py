from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from plantops.core.events.redaction import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class PlantOpsError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- Core types ----
class ConfigError(PlantOpsError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class RemoteUnavailable(PlantOpsError):
    """Network error, timeout or non-success status from the auth backend."""

    def __init__(self, user_message: str = "Authentication backend unavailable.", **ctx: Any):
        super().__init__("remote_unavailable", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class InvalidCredentials(PlantOpsError):
    def __init__(self, user_message: str = "Invalid credentials or backend unavailable.", **ctx: Any):
        super().__init__("invalid_credentials", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class LoginInProgress(PlantOpsError):
    def __init__(self, user_message: str = "A login attempt is already in progress.", **ctx: Any):
        super().__init__("login_in_progress", user_message, severity=Severity.INFO, recoverable=True, context=ctx)


class ModuleInitFailure(PlantOpsError):
    def __init__(self, user_message: str = "Module failed to initialize.", **ctx: Any):
        super().__init__("module_init_failure", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class TeardownFailure(PlantOpsError):
    def __init__(self, user_message: str = "Module failed to shut down cleanly.", **ctx: Any):
        super().__init__("teardown_failure", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class UnknownRoute(PlantOpsError):
    def __init__(self, user_message: str = "Page not found.", **ctx: Any):
        super().__init__("unknown_route", user_message, severity=Severity.INFO, recoverable=True, context=ctx)


class SessionCorrupt(PlantOpsError):
    def __init__(self, user_message: str = "Stored session could not be read.", **ctx: Any):
        super().__init__("session_corrupt", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class StateTransitionError(PlantOpsError):
    def __init__(self, user_message: str = "Internal state error.", **ctx: Any):
        super().__init__("state_transition_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)
