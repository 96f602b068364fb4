"""Cheap completion estimates for auto-exports, derived from the export cache."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from autoexport.exceptions import ConfigurationError
from autoexport.log import get_logger
from autoexport.models import CacheFingerprint
from autoexport.paths import collection_tree
from autoexport.queue import binding_scope, relevant_preferences


if TYPE_CHECKING:
    from autoexport.config import AutoExportSettings
    from autoexport.protocols import ExportCache, Exporter, Library
    from autoexport.storage import AutoExportBinding, BindingStore


logger = get_logger(__name__)


class ProgressEstimator:
    """Estimates how much of an export is already covered by the cache.

    Every eligible item counts twice: once for its serialized form and once for
    its final export under the binding's options. The estimate is a lower
    bound and never triggers any work.
    """

    def __init__(
        self,
        store: BindingStore,
        library: Library,
        exporter: Exporter,
        cache: ExportCache | None,
        settings: AutoExportSettings,
    ):
        self.store = store
        self.library = library
        self.exporter = exporter
        self.cache = cache
        self.settings = settings

    async def estimate(self, path: str) -> int:
        """Get the estimated completion (0-100) of the export for ``path``."""
        if not self.settings.cache or self.cache is None:
            return 0

        binding = await self.store.get(path)
        if binding is None:
            return 0
        exporter = self.exporter.get_exporter(binding.exporter_id)
        if exporter is None:
            msg = f"Unknown exporter {binding.exporter_id!r}"
            raise ConfigurationError(msg)

        item_ids = await self.eligible_items(binding)
        if not item_ids:
            return 100

        fingerprint = CacheFingerprint.build(
            exporter.label,
            export_notes=binding.export_notes,
            use_journal_abbreviation=binding.use_journal_abbreviation,
            preferences=relevant_preferences(binding, exporter),
        )
        serialized = self.cache.count_serialized(item_ids)
        exported = self.cache.count_exported(fingerprint, item_ids)
        pct = math.floor(100 * (serialized + exported) / (2 * len(item_ids)) + 0.5)
        logger.debug(
            "Estimated progress",
            path=path,
            items=len(item_ids),
            serialized=serialized,
            exported=exported,
        )
        return min(pct, 100)

    async def eligible_items(self, binding: AutoExportBinding) -> set[int]:
        """Ids of the regular items in the binding's scope.

        Recursive collection bindings include the items of all descendants.
        """
        scope = binding_scope(binding)
        if scope.type == "library":
            items = list(await self.library.library_items(scope.id))
        else:
            items = list(await self.library.collection_items(scope.id))
            if binding.recursive:
                for collection, _names in await collection_tree(self.library, scope):
                    items.extend(await self.library.collection_items(collection.id))
        return {item.id for item in items if item.exportable}
