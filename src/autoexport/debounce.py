"""Keyed debouncing on top of the asyncio event loop."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from autoexport.log import get_logger


if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


logger = get_logger(__name__)


class Debouncer[K]:
    """Delay actions per key until a quiet period has passed.

    Scheduling a key that already has a pending action replaces the action and
    restarts its delay, so a burst of requests results in a single call after
    the last one. While paused, requests are recorded (latest action wins) but
    nothing fires; resuming starts a fresh delay for every pending key.

    Actions are plain callables run on the event loop thread. Exceptions they
    raise are left to the loop's exception handler.

    Example:
        ```python
        debouncer = Debouncer[str](delay=5)
        debouncer.schedule("/out/lib.bib", lambda: print("export"))
        ```
    """

    def __init__(self, delay: float, *, paused: bool = False):
        """Initialize the debouncer.

        Args:
            delay: Quiet period in seconds
            paused: Whether to start paused
        """
        self.delay = delay
        self._paused = paused
        self._actions: dict[K, Callable[[], object]] = {}
        self._timers: dict[K, asyncio.TimerHandle] = {}

    @property
    def paused(self) -> bool:
        return self._paused

    def schedule(self, key: K, action: Callable[[], object]) -> None:
        """Arm (or re-arm) the delay for ``key``."""
        self._actions[key] = action
        self._cancel_timer(key)
        if not self._paused:
            self._arm(key)

    def cancel(self, key: K) -> None:
        """Drop any pending action for ``key`` without running it."""
        self._cancel_timer(key)
        self._actions.pop(key, None)

    def pause(self) -> None:
        """Stop all timers, keeping the pending actions."""
        if self._paused:
            return
        self._paused = True
        for key in list(self._timers):
            self._cancel_timer(key)
        logger.debug("Debouncer paused", pending=len(self._actions))

    def resume(self) -> None:
        """Restart a full delay for every pending action."""
        if not self._paused:
            return
        self._paused = False
        for key in self._actions:
            self._arm(key)
        logger.debug("Debouncer resumed", pending=len(self._actions))

    def clear(self) -> None:
        """Cancel every pending action."""
        for key in list(self._timers):
            self._cancel_timer(key)
        self._actions.clear()

    def is_pending(self, key: K) -> bool:
        return key in self._actions

    def __contains__(self, key: object) -> bool:
        return key in self._actions

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._actions))

    def _arm(self, key: K) -> None:
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self.delay, self._fire, key)

    def _cancel_timer(self, key: K) -> None:
        if timer := self._timers.pop(key, None):
            timer.cancel()

    def _fire(self, key: K) -> None:
        self._timers.pop(key, None)
        action = self._actions.pop(key, None)
        if action is not None:
            action()
