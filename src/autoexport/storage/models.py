"""Database model for auto-export bindings."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel


class AutoExportBinding(SQLModel, table=True):
    """An auto-export target: one library or collection exported to one path."""

    __tablename__ = "autoexport"  # pyright: ignore[reportAssignmentType]

    path: str = Field(primary_key=True)
    """Absolute output path, unique across all bindings."""

    scope_type: str = Field(index=True)
    """``collection`` or ``library``."""

    scope_id: int = Field(index=True)
    """Id of the collection or library in the data store."""

    exporter_id: str
    """Exporter producing the output."""

    recursive: bool = False
    """Also export every descendant collection to its own file."""

    status: str = Field(default="scheduled", index=True)
    """``scheduled``, ``running``, ``done`` or ``error``."""

    error: str = ""
    """Message of the last failed run, empty when the last run succeeded."""

    export_notes: bool = False
    use_journal_abbreviation: bool = False

    preferences: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    """Exporter preference overrides, limited to the keys the exporter declares."""

    updated: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    """When the last run finished."""

    @property
    def display_options(self) -> dict[str, bool]:
        return {
            "export_notes": self.export_notes,
            "use_journal_abbreviation": self.use_journal_abbreviation,
        }
