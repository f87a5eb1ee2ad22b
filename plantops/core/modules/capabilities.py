from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union


InitFn = Callable[[], Union[Awaitable[Any], Any]]
ReadyFn = Callable[[], bool]
ShowFn = Callable[[], Any]
DestroyFn = Callable[[], Union[Awaitable[Any], Any]]
DisconnectFn = Callable[[], Union[Awaitable[Any], Any]]


@dataclass(frozen=True)
class ModuleCapabilities:
    """
    The hooks a feature module offers. Every hook is optional; a missing hook
    is a legal no-op, and the registry dispatches on these fields only.
    """

    initialize: Optional[InitFn] = None
    is_ready: Optional[ReadyFn] = None
    show: Optional[ShowFn] = None
    destroy: Optional[DestroyFn] = None
    disconnect: Optional[DisconnectFn] = None

    @classmethod
    def from_object(cls, obj: Any) -> "ModuleCapabilities":
        """Adapt an object exposing any of the hook methods by name."""
        if isinstance(obj, ModuleCapabilities):
            return obj

        def hook(name: str) -> Optional[Callable[..., Any]]:
            fn = getattr(obj, name, None)
            return fn if callable(fn) else None

        return cls(
            initialize=hook("initialize"),
            is_ready=hook("is_ready"),
            show=hook("show"),
            destroy=hook("destroy"),
            disconnect=hook("disconnect"),
        )

    def hooks(self) -> list[str]:
        return [n for n in ("initialize", "is_ready", "show", "destroy", "disconnect") if getattr(self, n) is not None]
