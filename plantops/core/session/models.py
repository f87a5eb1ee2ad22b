from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class UserRole(str, Enum):
    operator = "operator"
    supervisor = "supervisor"


class Theme(str, Enum):
    operator = "operator"
    supervisor = "supervisor"


class SystemStatus(str, Enum):
    unknown = "unknown"
    connected = "connected"
    disconnected = "disconnected"


class SessionUser(BaseModel):
    """User record as returned by the backend and persisted under the user key."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str
    username: str
    role: UserRole
    display_name: str = Field(default="", alias="name")
    permissions: FrozenSet[str] = Field(default_factory=frozenset)

    @field_validator("id", "username", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> str:
        v = "" if v is None else str(v)
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("permissions", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return frozenset() if v is None else v

    @field_serializer("permissions")
    def _sorted(self, v: FrozenSet[str]) -> list[str]:
        return sorted(v)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SessionSnapshot(BaseModel):
    """Immutable view handed to consumers (guard, shell); never a live reference."""

    model_config = ConfigDict(frozen=True)

    token: Optional[str] = None
    user: Optional[SessionUser] = None
    last_login: Optional[datetime] = None
    theme: Theme = Theme.operator
    authenticated: bool = False
    expired: bool = True

    @property
    def role(self) -> Optional[UserRole]:
        return self.user.role if self.user is not None else None
