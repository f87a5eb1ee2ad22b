from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AccessPolicy(str, Enum):
    public = "public"
    authenticated = "authenticated"
    supervisor_only = "supervisor-only"


class BackendConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    api_base_url: str = "http://localhost:8000"
    login_path: str = "/api/auth/login"
    device: str = "web_dashboard"
    request_timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    ws_url: str = "ws://localhost:8000/ws/telemetry"


class SessionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    max_age_hours: float = Field(default=24.0, gt=0)
    storage_path: str = "runtime/session.json"
    token_key: str = "iot_token"
    user_key: str = "iot_user"
    last_login_key: str = "iot_last_login"
    theme_key: str = "iot_theme"
    default_theme: str = "operator"


class FallbackUserConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: str
    password: str
    role: Literal["operator", "supervisor"]
    name: str
    permissions: List[str] = Field(default_factory=list)


def _default_fallback_users() -> Dict[str, FallbackUserConfig]:
    return {
        "operador": FallbackUserConfig(
            id="op_1",
            password="op123",
            role="operator",
            name="Operador Demo",
            permissions=["view_dashboard", "view_alerts"],
        ),
        "supervisor": FallbackUserConfig(
            id="sup_1",
            password="sup123",
            role="supervisor",
            name="Supervisor Demo",
            permissions=["view_dashboard", "view_alerts", "manage_users", "configure_system"],
        ),
    }


class AuthConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    fallback_enabled: bool = True
    fallback_users: Dict[str, FallbackUserConfig] = Field(default_factory=_default_fallback_users)

    @field_validator("fallback_users")
    @classmethod
    def _lower_keys(cls, v: Dict[str, FallbackUserConfig]) -> Dict[str, FallbackUserConfig]:
        return {str(k).lower(): u for k, u in v.items()}


class ViewConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: str
    access_policy: AccessPolicy = AccessPolicy.authenticated


def _default_views() -> List[ViewConfig]:
    return [
        ViewConfig(id="login", access_policy=AccessPolicy.public),
        ViewConfig(id="dashboard", access_policy=AccessPolicy.authenticated),
        ViewConfig(id="alerts", access_policy=AccessPolicy.authenticated),
        ViewConfig(id="analysis", access_policy=AccessPolicy.supervisor_only),
        ViewConfig(id="reports", access_policy=AccessPolicy.supervisor_only),
        ViewConfig(id="config", access_policy=AccessPolicy.supervisor_only),
    ]


class NavigationConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    views: List[ViewConfig] = Field(default_factory=_default_views)
    login_view: str = "login"
    default_view: str = "dashboard"
    primary_modules: Dict[str, str] = Field(default_factory=lambda: {"dashboard": "dashboard", "alerts": "alerts"})

    @model_validator(mode="after")
    def _required_views_declared(self) -> "NavigationConfig":
        ids = [v.id for v in self.views]
        if len(ids) != len(set(ids)):
            raise ValueError("view ids must be unique")
        for required in (self.login_view, self.default_view):
            if required not in ids:
                raise ValueError(f"view '{required}' must be declared")
        return self


class NotificationsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    duration_seconds: float = Field(default=5.0, gt=0)
    max_visible: int = Field(default=20, ge=1, le=500)


class ShutdownConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")
    phase_timeouts_seconds: Dict[str, float] = Field(
        default_factory=lambda: {
            "disconnect_transport": 2.0,
            "teardown_modules": 5.0,
            "reset_session_state": 1.0,
            "stop_bus": 2.0,
        }
    )


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log_dir: str = "logs"
    level: str = "INFO"
    include_tracebacks: bool = False


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    config_version: int = Field(default=1, ge=1)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    shutdown: ShutdownConfigFile = Field(default_factory=ShutdownConfigFile)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
