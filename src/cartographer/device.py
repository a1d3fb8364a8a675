"""Narrow interfaces to the device: reading the UI tree and issuing gestures.

Implementations live outside this package (an accessibility service bridge,
adb, a simulator). Gestures are fire-and-forget; callers wait a settle
delay instead of expecting a completion callback.
"""

from __future__ import annotations

from typing import Mapping, Optional, Protocol, Tuple

from .models import Element


class ScreenReader(Protocol):
    async def capture_tree(self) -> str:
        """Return the current accessibility tree document. Blank means nothing to read."""
        ...

    async def current_foreground_app(self) -> Optional[str]:
        ...


class DeviceController(Protocol):
    async def tap(self, x: int, y: int) -> None:
        ...

    async def type_text(self, text: str) -> None:
        ...

    async def back(self) -> None:
        ...

    async def home(self) -> None:
        ...

    async def launch_app(self, package_name: str) -> bool:
        ...

    async def installed_apps(self) -> Mapping[str, str]:
        """Display label -> launchable package identifier."""
        ...


def tap_point(element: Element) -> Optional[Tuple[int, int]]:
    if element.bounds is None:
        return None
    return element.bounds.center
