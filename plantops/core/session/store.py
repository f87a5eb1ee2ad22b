from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from plantops.core.config.models import SessionConfig
from plantops.core.errors import SessionCorrupt
from plantops.core.persistence.kv_store import KeyValueStore
from plantops.core.session.models import SessionSnapshot, SessionUser, SystemStatus, Theme


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class SessionStore:
    """
    The single shared mutable session.

    Every mutation (establish, clear, expire) runs without suspension points,
    so no other event handler can observe a half-written session.
    Expiry is a wall-clock window since the last login; the token itself is
    never inspected.
    """

    def __init__(self, *, kv: KeyValueStore, cfg: Optional[SessionConfig] = None, clock: Callable[[], float] = time.time, logger: Optional[logging.Logger] = None):
        self.kv = kv
        self.cfg = cfg or SessionConfig()
        self.clock = clock
        self.logger = logger or logging.getLogger("plantops.session")

        self._token: Optional[str] = None
        self._user: Optional[SessionUser] = None
        self._last_login: Optional[datetime] = None
        self._theme: Theme = self._coerce_theme(self.cfg.default_theme)
        self.system_status: SystemStatus = SystemStatus.unknown

    # ---- queries ----
    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def user(self) -> Optional[SessionUser]:
        return self._user

    @property
    def last_login(self) -> Optional[datetime]:
        return self._last_login

    @property
    def theme(self) -> Theme:
        return self._theme

    def is_authenticated(self) -> bool:
        return self._token is not None and self._user is not None

    def is_expired(self) -> bool:
        if self._last_login is None:
            return True
        now = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        return (now - self._last_login) > timedelta(hours=float(self.cfg.max_age_hours))

    def is_valid(self) -> bool:
        return self.is_authenticated() and not self.is_expired()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            token=self._token,
            user=self._user,
            last_login=self._last_login,
            theme=self._theme,
            authenticated=self.is_authenticated(),
            expired=self.is_expired(),
        )

    # ---- mutations ----
    def establish(self, *, token: str, user: SessionUser) -> SessionSnapshot:
        if not token:
            raise ValueError("token required")
        now = self.clock()
        self._token = str(token)
        self._user = user
        self._last_login = datetime.fromtimestamp(now, tz=timezone.utc)
        self._persist_auth(now)
        return self.snapshot()

    def clear(self) -> None:
        self._token = None
        self._user = None
        self._last_login = None
        for key in (self.cfg.token_key, self.cfg.user_key, self.cfg.last_login_key):
            try:
                self.kv.remove(key)
            except OSError as e:
                self.logger.warning("Could not remove persisted key %s: %s", key, e)

    def set_theme(self, theme: Theme) -> None:
        self._theme = Theme(theme)
        try:
            self.kv.set(self.cfg.theme_key, self._theme.value)
        except OSError as e:
            self.logger.warning("Could not persist theme: %s", e)

    def restore(self) -> SessionSnapshot:
        """
        Load the persisted session. Absent keys mean logged out; malformed data
        is discarded and treated the same way.
        """
        self._theme = self._coerce_theme(self.kv.get(self.cfg.theme_key) or self.cfg.default_theme)
        try:
            token, user, last_login = self._read_persisted()
        except SessionCorrupt as e:
            self.logger.warning("Discarding persisted session: %s", e.context)
            self.clear()
            return self.snapshot()
        if token is None or user is None:
            # half a session is no session; the theme is kept separately
            if token is not None or user is not None or last_login is not None:
                self.clear()
            self._token, self._user, self._last_login = None, None, None
            return self.snapshot()
        self._token = token
        self._user = user
        self._last_login = last_login
        return self.snapshot()

    # ---- internals ----
    def _read_persisted(self):
        token = self.kv.get(self.cfg.token_key) or None
        raw_user = self.kv.get(self.cfg.user_key)
        raw_last = self.kv.get(self.cfg.last_login_key)

        user: Optional[SessionUser] = None
        if raw_user and raw_user != "null":
            try:
                user = SessionUser.model_validate(json.loads(raw_user))
            except (json.JSONDecodeError, ValidationError, TypeError) as e:
                raise SessionCorrupt(key=self.cfg.user_key, error=type(e).__name__) from e

        last_login: Optional[datetime] = None
        if raw_last:
            try:
                last_login = _parse_iso(raw_last)
            except ValueError:
                # unparseable timestamp: keep the session but fail closed on expiry
                self.logger.warning("Unparseable %s value; session will be treated as expired", self.cfg.last_login_key)
                last_login = None
        return token, user, last_login

    def _persist_auth(self, now: float) -> None:
        assert self._user is not None and self._token is not None
        try:
            self.kv.set(self.cfg.token_key, self._token)
            self.kv.set(self.cfg.user_key, json.dumps(self._user.to_record(), ensure_ascii=False))
            self.kv.set(self.cfg.last_login_key, _iso(now))
        except OSError as e:
            self.logger.warning("Could not persist session; it will not survive a restart: %s", e)

    @staticmethod
    def _coerce_theme(value: str) -> Theme:
        try:
            return Theme(str(value))
        except ValueError:
            return Theme.operator
