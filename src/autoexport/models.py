"""Core models passed between the auto-export engine and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


ScopeType = Literal["collection", "library"]
RunStatus = Literal["scheduled", "running", "done", "error"]

IGNORED_ITEM_TYPES = frozenset({"attachment", "note", "annotation"})
"""Item types that never count towards an export's workload."""


@dataclass(frozen=True)
class Collection:
    """A collection as reported by the library."""

    id: int
    name: str
    parent_id: int | None = None
    library_id: int | None = None


@dataclass(frozen=True)
class Item:
    """A library item, reduced to what the engine needs."""

    id: int
    item_type: str

    @property
    def exportable(self) -> bool:
        """Whether the item is a regular item (no attachment, note or annotation)."""
        return self.item_type not in IGNORED_ITEM_TYPES


@dataclass(frozen=True)
class Scope:
    """The set of items an export operates over."""

    type: ScopeType
    id: int


@dataclass(frozen=True)
class ExporterInfo:
    """What the engine needs to know about an exporter."""

    id: str
    """Exporter identity as stored on bindings."""

    label: str
    """Human readable name, e.g. ``Better BibTeX``."""

    extension: str
    """Canonical file extension without the leading dot."""

    preferences: tuple[str, ...] = ()
    """Preference keys this exporter declares as affecting its output."""

    display_options: dict[str, Any] = field(default_factory=dict)
    """Default values for the exporter's display options."""


@dataclass
class ExportJob:
    """A single export request handed to the exporter."""

    exporter_id: str
    scope: Scope
    path: str
    auto_export: str
    """Path of the binding this job belongs to."""

    display_options: dict[str, Any] = field(default_factory=dict)
    preferences: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CacheFingerprint:
    """Identifies the cache entries produced for one option/preference combination."""

    exporter: str
    export_notes: bool
    use_journal_abbreviation: bool
    preferences: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def build(
        cls,
        exporter: str,
        *,
        export_notes: bool,
        use_journal_abbreviation: bool,
        preferences: dict[str, Any],
    ) -> CacheFingerprint:
        return cls(
            exporter=exporter,
            export_notes=bool(export_notes),
            use_journal_abbreviation=bool(use_journal_abbreviation),
            preferences=tuple(sorted(preferences.items())),
        )
