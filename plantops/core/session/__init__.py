from plantops.core.session.models import SessionSnapshot, SessionUser, SystemStatus, Theme, UserRole
from plantops.core.session.store import SessionStore

__all__ = ["SessionSnapshot", "SessionStore", "SessionUser", "SystemStatus", "Theme", "UserRole"]
