"""Pause and resume the auto-export queue based on user activity."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from autoexport.log import get_logger


if TYPE_CHECKING:
    from autoexport.config import AutoExportMode, AutoExportSettings
    from autoexport.events import LibraryEvents
    from autoexport.queue import GateReason, SyncQueue


logger = get_logger(__name__)

IdleState = Literal["idle", "active"]
GateAction = Literal["pause", "resume"]

IDLE_TOPIC = "auto-export"


def decide(mode: AutoExportMode, state: IdleState) -> GateAction:
    """Whether the queue should run for a preference and idle state.

    | mode      | state  | action |
    |-----------|--------|--------|
    | immediate | any    | resume |
    | idle      | active | pause  |
    | idle      | idle   | resume |
    | off       | any    | pause  |
    """
    match mode:
        case "immediate":
            return "resume"
        case "idle":
            return "resume" if state == "idle" else "pause"
        case _:
            return "pause"


class IdleGate:
    """Applies the ``auto_export`` preference and the host's idle signal to a queue.

    Until the host reports otherwise, the user is assumed to be active.
    """

    def __init__(
        self,
        queue: SyncQueue,
        settings: AutoExportSettings,
        events: LibraryEvents,
        topic: str = IDLE_TOPIC,
    ):
        self.queue = queue
        self.settings = settings
        self.events = events
        self.topic = topic
        self.state: IdleState = "active"
        self._started = False

    def start(self) -> None:
        """Subscribe to idle and preference changes and apply the current state."""
        if self._started:
            return
        self._started = True
        self.events.idle.connect(self._on_idle)
        self.settings.events.auto_export.connect(self._on_mode_changed)
        self.settings.events.auto_export_idle_wait.connect(self._request_listener)
        self._request_listener(self.settings.auto_export_idle_wait)
        self.apply("startup")

    def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        self.events.idle.disconnect(self._on_idle)
        self.settings.events.auto_export.disconnect(self._on_mode_changed)
        self.settings.events.auto_export_idle_wait.disconnect(self._request_listener)

    def apply(self, reason: GateReason) -> GateAction:
        """Pause or resume the queue according to the decision table."""
        action = decide(self.settings.auto_export, self.state)
        logger.debug(
            "Idle gate",
            mode=self.settings.auto_export,
            state=self.state,
            action=action,
            reason=reason,
        )
        if action == "resume":
            self.queue.resume(reason)
        else:
            self.queue.pause(reason)
        return action

    def _request_listener(self, seconds: float) -> None:
        self.events.idle_listener_requested.emit(self.topic, float(seconds))

    def _on_idle(self, topic: str, state: str) -> None:
        if topic != self.topic:
            return
        match state:
            case "idle" | "active":
                self.state = state
            case _:
                logger.error("Unexpected idle state", topic=topic, state=state)
                return
        self.apply("start-of-idle" if state == "idle" else "end-of-idle")

    def _on_mode_changed(self, mode: AutoExportMode) -> None:
        self.apply("preference-change")
