from __future__ import annotations

import hmac
import secrets
from typing import Dict, Optional

from plantops.core.config.models import FallbackUserConfig
from plantops.core.session.models import SessionUser


LOCAL_TOKEN_PREFIX = "LOCAL_TOKEN_"


class FallbackCredentialTable:
    """
    Static local credentials consulted when the backend cannot authenticate.

    Keys are lower-cased usernames; the password must match exactly.
    """

    def __init__(self, users: Dict[str, FallbackUserConfig]):
        self._users = {str(k).lower(): v for k, v in users.items()}

    def __contains__(self, username: str) -> bool:
        return str(username).lower() in self._users

    def authenticate(self, username: str, password: str) -> Optional[SessionUser]:
        entry = self._users.get(str(username).lower())
        if entry is None:
            return None
        if not hmac.compare_digest(entry.password.encode("utf-8"), str(password).encode("utf-8")):
            return None
        return SessionUser(
            id=entry.id,
            username=username,
            role=entry.role,
            display_name=entry.name,
            permissions=frozenset(entry.permissions),
        )


def make_local_token(username: str, now: float) -> str:
    return f"{LOCAL_TOKEN_PREFIX}{username}_{int(now * 1000)}_{secrets.token_hex(4)}"


def is_local_token(token: Optional[str]) -> bool:
    return bool(token) and str(token).startswith(LOCAL_TOKEN_PREFIX)
