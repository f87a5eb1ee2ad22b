from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

from plantops.core.config.models import AccessPolicy, NavigationConfig


@dataclass(frozen=True)
class ViewDescriptor:
    id: str
    access_policy: AccessPolicy = AccessPolicy.authenticated


class ViewRenderer(Protocol):
    """The externally owned markup: it draws what the orchestrator decides."""

    def show_view(self, view_id: str) -> None: ...

    def hide_view(self, view_id: str) -> None: ...

    def highlight_nav(self, view_id: Optional[str]) -> None: ...

    def show_authenticated_chrome(self, user: Dict[str, Any]) -> None: ...

    def show_login_chrome(self) -> None: ...


class NullRenderer:
    def show_view(self, view_id: str) -> None:
        return

    def hide_view(self, view_id: str) -> None:
        return

    def highlight_nav(self, view_id: Optional[str]) -> None:
        return

    def show_authenticated_chrome(self, user: Dict[str, Any]) -> None:
        return

    def show_login_chrome(self) -> None:
        return


class ViewRegistry:
    """
    Declared views plus the single "currently active view" toggle.

    The logical flip in activate() is synchronous and complete before any
    renderer call; a failing renderer never changes which view is active.
    """

    def __init__(self, views: Iterable[ViewDescriptor], *, renderer: Optional[ViewRenderer] = None, logger: Optional[logging.Logger] = None):
        self._views: Dict[str, ViewDescriptor] = {}
        for v in views:
            if v.id in self._views:
                raise ValueError(f"duplicate view id: {v.id}")
            self._views[v.id] = v
        self.renderer: ViewRenderer = renderer or NullRenderer()
        self.logger = logger or logging.getLogger("plantops.navigation")
        self._active: Optional[str] = None

    @classmethod
    def from_config(cls, cfg: NavigationConfig, *, renderer: Optional[ViewRenderer] = None, logger: Optional[logging.Logger] = None) -> "ViewRegistry":
        return cls((ViewDescriptor(id=v.id, access_policy=v.access_policy) for v in cfg.views), renderer=renderer, logger=logger)

    def __contains__(self, view_id: str) -> bool:
        return view_id in self._views

    def get(self, view_id: str) -> Optional[ViewDescriptor]:
        return self._views.get(view_id)

    def ids(self) -> List[str]:
        return list(self._views.keys())

    @property
    def active_id(self) -> Optional[str]:
        return self._active

    def is_active(self, view_id: str) -> bool:
        return self._active is not None and self._active == view_id

    def activate(self, view_id: str) -> Optional[str]:
        if view_id not in self._views:
            raise KeyError(view_id)
        previous = self._active
        self._active = view_id
        if previous is not None and previous != view_id:
            self._render("hide_view", previous)
        self._render("show_view", view_id)
        self._render("highlight_nav", view_id)
        return previous

    def deactivate_all(self) -> Optional[str]:
        previous = self._active
        self._active = None
        if previous is not None:
            self._render("hide_view", previous)
        self._render("highlight_nav", None)
        return previous

    def _render(self, method: str, *args: Any) -> None:
        try:
            getattr(self.renderer, method)(*args)
        except Exception:  # noqa: BLE001
            self.logger.exception("Renderer %s%r failed", method, args)
