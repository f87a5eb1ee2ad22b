from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from plantops.core.config.models import AccessPolicy, NavigationConfig
from plantops.core.errors import UnknownRoute
from plantops.core.navigation.views import ViewRegistry
from plantops.core.session.models import SessionSnapshot, UserRole


class DecisionKind(str, Enum):
    ALLOW = "ALLOW"
    REDIRECT = "REDIRECT"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    view_id: str
    noop: bool = False
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.kind == DecisionKind.ALLOW

    @classmethod
    def allow(cls, view_id: str, *, noop: bool = False, reason: str = "") -> "Decision":
        return cls(kind=DecisionKind.ALLOW, view_id=view_id, noop=noop, reason=reason)

    @classmethod
    def redirect(cls, view_id: str, *, reason: str) -> "Decision":
        return cls(kind=DecisionKind.REDIRECT, view_id=view_id, reason=reason)


def parse_fragment(fragment: Optional[str]) -> str:
    """'#alerts' -> 'alerts'; empty or missing -> ''."""
    return str(fragment or "").strip().lstrip("#").strip()


class NavigationGuard:
    """
    Pure decision function over (requested view, session snapshot).

    Rules, first match wins:
      1. anything but the login view needs a valid (authenticated, unexpired) session
      2. supervisor-only views need the supervisor role
      3. the active view resolves to a no-op allow
      4. undeclared views redirect to the default view
      5. everything else is allowed
    """

    def __init__(self, *, views: ViewRegistry, cfg: Optional[NavigationConfig] = None, logger: Optional[logging.Logger] = None):
        self.views = views
        self.cfg = cfg or NavigationConfig()
        self.logger = logger or logging.getLogger("plantops.navigation.guard")

    @property
    def login_view(self) -> str:
        return self.cfg.login_view

    @property
    def default_view(self) -> str:
        return self.cfg.default_view

    def resolve(self, requested_view_id: str, session: SessionSnapshot) -> Decision:
        view_id = parse_fragment(requested_view_id)
        valid = session.authenticated and not session.expired

        if view_id != self.login_view and not valid:
            return Decision.redirect(self.login_view, reason="not_authenticated")

        view = self.views.get(view_id)
        if view is not None and view.access_policy == AccessPolicy.supervisor_only and session.role != UserRole.supervisor:
            self.logger.warning("Access to %s denied: supervisor required", view_id)
            return Decision.redirect(self.default_view, reason="supervisor_required")

        if view is not None and self.views.is_active(view_id):
            return Decision.allow(view_id, noop=True, reason="already_active")

        if view is None:
            err = UnknownRoute(view=view_id)
            self.logger.warning("%s: %r; redirecting to %s", err.code, view_id, self.default_view)
            return Decision.redirect(self.default_view, reason="unknown_route")

        return Decision.allow(view_id)
