from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from plantops.core.config.models import BackendConfig
from plantops.core.errors import RemoteUnavailable
from plantops.core.session.models import SessionUser


@dataclass(frozen=True)
class RemoteAuthResult:
    token: str
    user: SessionUser


class RemoteAuthClient:
    """
    Request/response call to the backend login endpoint.

    Every failure mode (transport error, timeout, non-2xx status, malformed
    body) is raised as RemoteUnavailable; callers never see httpx errors.
    """

    def __init__(self, *, cfg: Optional[BackendConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None, logger: Optional[logging.Logger] = None):
        self.cfg = cfg or BackendConfig()
        self.transport = transport
        self.logger = logger or logging.getLogger("plantops.auth.remote")

    @property
    def login_url(self) -> str:
        return f"{self.cfg.api_base_url.rstrip('/')}/{self.cfg.login_path.lstrip('/')}"

    async def authenticate(self, username: str, password: str) -> RemoteAuthResult:
        timeout = float(self.cfg.request_timeout_seconds)
        body = {"username": username, "password": password, "device": self.cfg.device}
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                resp = await asyncio.wait_for(
                    client.post(self.login_url, json=body, headers={"Accept": "application/json"}),
                    timeout=timeout,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise RemoteUnavailable(reason="timeout", timeout_seconds=timeout) from e
        except httpx.HTTPError as e:
            raise RemoteUnavailable(reason="transport", error=type(e).__name__) from e

        if not resp.is_success:
            raise RemoteUnavailable(reason="status", status_code=resp.status_code)
        return self._parse(resp, username)

    def _parse(self, resp: httpx.Response, username: str) -> RemoteAuthResult:
        try:
            data: Dict[str, Any] = resp.json()
            token = data.get("access_token") or data.get("token")
            user = data["user"]
            if not token or not isinstance(user, dict):
                raise ValueError("token and user required")
            record = {
                "id": user.get("id"),
                "username": user.get("username") or username,
                "role": user.get("role"),
                "name": user.get("name") or username,
                "permissions": user.get("permissions") or [],
            }
            return RemoteAuthResult(token=str(token), user=SessionUser.model_validate(record))
        except (ValidationError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise RemoteUnavailable(reason="malformed_response", error=type(e).__name__) from e
