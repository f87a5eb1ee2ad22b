from __future__ import annotations

from typing import Callable, List

from plantops.core.navigation.guard import parse_fragment


class Location:
    """
    The location fragment ("#dashboard") owned by the surrounding shell.

    assign() is a user-initiated change and notifies listeners when the value
    actually changes; replace() rewrites it silently (redirects).
    """

    def __init__(self, fragment: str = ""):
        self._fragment = parse_fragment(fragment)
        self._listeners: List[Callable[[str], None]] = []

    @property
    def fragment(self) -> str:
        return self._fragment

    @property
    def hash(self) -> str:
        return f"#{self._fragment}" if self._fragment else ""

    def on_change(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def assign(self, fragment: str) -> bool:
        value = parse_fragment(fragment)
        if value == self._fragment:
            return False
        self._fragment = value
        for listener in list(self._listeners):
            listener(value)
        return True

    def replace(self, fragment: str) -> None:
        self._fragment = parse_fragment(fragment)
