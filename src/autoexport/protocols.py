"""Protocols for the collaborators the auto-export engine drives."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable


if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from autoexport.models import CacheFingerprint, Collection, ExporterInfo, ExportJob, Item


@runtime_checkable
class Library(Protocol):
    """Read access to the item/collection data store."""

    async def top_collections(self, library_id: int) -> Sequence[Collection]:
        """Get the top-level collections of a library in store order."""
        ...

    async def child_collections(self, collection_id: int) -> Sequence[Collection]:
        """Get the direct children of a collection in store order."""
        ...

    async def collection_items(self, collection_id: int) -> Sequence[Item]:
        """Get the items directly contained in a collection."""
        ...

    async def library_items(self, library_id: int) -> Sequence[Item]:
        """Get all items of a library."""
        ...


@runtime_checkable
class Exporter(Protocol):
    """Turns export jobs into files."""

    def get_exporter(self, exporter_id: str) -> ExporterInfo | None:
        """Look up an exporter by id."""
        ...

    async def export(self, job: ExportJob) -> None:
        """Write the export for ``job`` to ``job.path``. Raises on failure."""
        ...


@runtime_checkable
class ExportCache(Protocol):
    """Read-only view on the export cache."""

    def count_serialized(self, item_ids: Iterable[int]) -> int:
        """Count items that have a cached serialized intermediate."""
        ...

    def count_exported(self, fingerprint: CacheFingerprint, item_ids: Iterable[int]) -> int:
        """Count items that have a cached final export for ``fingerprint``."""
        ...
