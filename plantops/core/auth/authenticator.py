from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from plantops.core.auth.fallback import FallbackCredentialTable, is_local_token, make_local_token
from plantops.core.auth.remote import RemoteAuthClient
from plantops.core.errors import InvalidCredentials, LoginInProgress, RemoteUnavailable
from plantops.core.events import models as ev
from plantops.core.events.bus import EventBus
from plantops.core.notifications import NotificationChannel, NotificationSeverity
from plantops.core.session.models import SessionUser, SystemStatus, Theme, UserRole
from plantops.core.session.store import SessionStore
from plantops.core.trace import current_trace_id


class AuthSource(str, Enum):
    remote = "remote"
    local = "local"


class AuthCheck(str, Enum):
    AUTHENTICATED = "AUTHENTICATED"
    EXPIRED = "EXPIRED"
    ANONYMOUS = "ANONYMOUS"


@dataclass(frozen=True)
class LoginResult:
    success: bool
    error: Optional[str] = None
    code: Optional[str] = None
    source: Optional[AuthSource] = None

    @classmethod
    def ok(cls, source: AuthSource) -> "LoginResult":
        return cls(success=True, source=source)

    @classmethod
    def failed(cls, error: str, code: str) -> "LoginResult":
        return cls(success=False, error=error, code=code)


class Authenticator:
    """
    Credential validation and session issue/revoke.

    login() tries the backend first and falls back to the local credential
    table on any RemoteUnavailable, including a non-success response. That
    fallback lets anyone who knows the local table in even when the backend
    rejected the attempt; disable it with `auth.fallback_enabled` where that
    matters.

    Expiry is a 24h wall-clock heuristic from the last login, not token
    validation.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        bus: EventBus,
        remote: Optional[RemoteAuthClient] = None,
        fallback: Optional[FallbackCredentialTable] = None,
        notifier: Optional[NotificationChannel] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.bus = bus
        self.remote = remote
        self.fallback = fallback
        self.notifier = notifier
        self.logger = logger or logging.getLogger("plantops.auth")
        self._login_lock = asyncio.Lock()

    # ---- login / logout ----
    def login_pending(self) -> bool:
        return self._login_lock.locked()

    async def login(self, username: str, password: str) -> LoginResult:
        if self._login_lock.locked():
            err = LoginInProgress()
            self.logger.info("Login for %s ignored: another attempt is in flight", username)
            return LoginResult.failed(err.user_message, err.code)
        async with self._login_lock:
            return await self._login(username, password)

    async def _login(self, username: str, password: str) -> LoginResult:
        self.logger.info("Login attempt for user %s", username)

        if self.remote is not None:
            try:
                res = await self.remote.authenticate(username, password)
            except RemoteUnavailable as e:
                self.logger.warning("Backend login unavailable for %s: %s", username, e.context)
            else:
                self._complete(token=res.token, user=res.user)
                self.logger.info("Login ok: %s (%s) via backend", username, res.user.role.value)
                return LoginResult.ok(AuthSource.remote)

        if self.fallback is not None:
            user = self.fallback.authenticate(username, password)
            if user is not None:
                self._complete(token=make_local_token(username, self.store.clock()), user=user)
                self.logger.info("Login ok: %s (%s) via local credentials", username, user.role.value)
                return LoginResult.ok(AuthSource.local)

        err = InvalidCredentials()
        self.logger.warning("Login failed for %s", username)
        return LoginResult.failed(err.user_message, err.code)

    async def logout(self, *, reason: str = "user") -> None:
        """Safe to call when already logged out: clearing is repeated, the signal is not."""
        had_session = self.store.token is not None or self.store.user is not None
        self.store.clear()
        self.store.system_status = SystemStatus.unknown
        if not had_session:
            return
        self.logger.info("Logged out (%s)", reason)
        await self.bus.emit(ev.logout(reason=reason, trace_id=current_trace_id()))

    async def check_current_auth(self) -> AuthCheck:
        """Startup reconciliation against the restored session; no network call."""
        if not self.is_authenticated():
            self.logger.info("Not authenticated; login required")
            return AuthCheck.ANONYMOUS
        if self.is_token_expired():
            self.logger.info("Session expired; logging out")
            await self.logout(reason="expired")
            return AuthCheck.EXPIRED
        self._mark_connected()
        user = self.store.user
        assert user is not None
        await self.bus.emit(ev.already_authenticated(user=user.to_record(), trace_id=current_trace_id()))
        self.logger.info("Already authenticated: %s", user.username)
        return AuthCheck.AUTHENTICATED

    # ---- queries ----
    def is_authenticated(self) -> bool:
        return self.store.is_authenticated()

    def is_token_expired(self) -> bool:
        return self.store.is_expired()

    def current_user(self) -> Optional[SessionUser]:
        return self.store.user

    def current_token(self) -> Optional[str]:
        return self.store.token

    def is_local_session(self) -> bool:
        return is_local_token(self.store.token)

    def has_role(self, role: UserRole | str) -> bool:
        user = self.store.user
        return user is not None and user.role == UserRole(role)

    def has_permission(self, permission: str) -> bool:
        user = self.store.user
        return user is not None and permission in user.permissions

    # ---- theme ----
    def current_theme(self) -> Theme:
        return self.store.theme

    def toggle_theme(self) -> Optional[Theme]:
        if not self.has_role(UserRole.supervisor):
            self.logger.warning("Theme toggle refused: supervisor role required")
            if self.notifier is not None:
                self.notifier.notify("Only supervisors can change the theme", NotificationSeverity.warning)
            return None
        new_theme = Theme.supervisor if self.store.theme == Theme.operator else Theme.operator
        self.store.set_theme(new_theme)
        self.bus.publish(ev.theme_changed(theme=new_theme.value, trace_id=current_trace_id()))
        self.logger.info("Theme changed to %s", new_theme.value)
        return new_theme

    # ---- internals ----
    def _complete(self, *, token: str, user: SessionUser) -> None:
        self.store.establish(token=token, user=user)
        self._mark_connected()

    def _mark_connected(self) -> None:
        self.store.system_status = SystemStatus.connected
        self.bus.publish(ev.system_status(status=SystemStatus.connected.value, trace_id=current_trace_id()))
