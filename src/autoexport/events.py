"""Signals connecting the auto-export engine to its host."""

from __future__ import annotations

from psygnal import Signal


class LibraryEvents:
    """Signal hub shared between the host application and the engine.

    The host emits the change and idle signals; the engine emits progress,
    flash notifications and idle listener requests.
    """

    collections_changed = Signal(list)
    """Collection ids whose contents changed."""

    collections_removed = Signal(list)
    """Collection ids that were deleted."""

    libraries_changed = Signal(list)
    """Library ids whose contents changed."""

    libraries_removed = Signal(list)
    """Library ids that were deleted."""

    idle = Signal(str, str)
    """Idle state change as ``(topic, state)``, state is ``idle`` or ``active``."""

    idle_listener_requested = Signal(str, float)
    """Ask the host to report idle state for ``topic`` after ``seconds`` of inactivity."""

    export_progress = Signal(str, int, str)
    """Export progress as ``(binding path, percent, message)``."""

    flash = Signal(str, str)
    """Short-lived user notification as ``(title, message)``."""
