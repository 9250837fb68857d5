"""Idle timeout guard: a single re-armable one-shot timer on the running event loop."""
from __future__ import annotations

import asyncio
from typing import Callable

from scavenger.constants import DEFAULT_IDLE_TIMEOUT_SECONDS


class IdleTimeoutGuard:
    """Fires ``on_fire`` once if ``on_delivery()`` is not called again within the window.

    At most one timer is pending at any time; re-arming cancels the previous one.
    """

    def __init__(
        self,
        on_fire: Callable[[], None],
        timeout_seconds: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._on_fire = on_fire
        self._timeout_seconds = timeout_seconds
        self._handle: asyncio.TimerHandle | None = None

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._timeout_seconds, self._fire)

    def on_delivery(self) -> None:
        self.arm()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._on_fire()
