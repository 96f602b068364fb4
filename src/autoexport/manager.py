"""Auto-export service tying bindings, queue, idle gate and progress together."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Self

from autoexport.config import AutoExportSettings
from autoexport.events import LibraryEvents
from autoexport.exceptions import ConfigurationError
from autoexport.git import GitAdapter
from autoexport.idle import IdleGate
from autoexport.log import get_logger
from autoexport.progress import ProgressEstimator
from autoexport.queue import SyncQueue
from autoexport.storage import AutoExportBinding, BindingStore


if TYPE_CHECKING:
    from collections.abc import Coroutine, Iterable
    from types import TracebackType

    from autoexport.config import StorageConfig
    from autoexport.models import RunStatus, ScopeType
    from autoexport.protocols import ExportCache, Exporter, Library


logger = get_logger(__name__)


class AutoExportManager:
    """Keeps auto-export outputs in sync with the library.

    Handles:
    - Binding management (add, update, remove, list)
    - Scheduling runs when libraries or collections change
    - Re-running bindings left unfinished by a previous process
    - Pausing and resuming runs based on preference and user activity
    - Progress reporting

    Example:
        ```python
        async with AutoExportManager(exporter=exporter, library=library) as manager:
            await manager.add(
                "/papers/refs.bib",
                scope_type="library",
                scope_id=1,
                exporter_id="better-bibtex",
            )
        ```
    """

    def __init__(
        self,
        *,
        exporter: Exporter,
        library: Library,
        cache: ExportCache | None = None,
        settings: AutoExportSettings | None = None,
        events: LibraryEvents | None = None,
        store: BindingStore | None = None,
        storage: StorageConfig | None = None,
        git: GitAdapter | None = None,
    ):
        """Initialize the manager.

        Args:
            exporter: Exporter writing the output files
            library: Data store the bindings refer to
            cache: Export cache used for progress estimates
            settings: User preferences
            events: Signal hub shared with the host
            store: Binding store to use (created from ``storage`` if not given)
            storage: Storage configuration for a new binding store
            git: Git adapter (created from ``settings`` if not given)
        """
        self.exporter = exporter
        self.library = library
        self.settings = settings or AutoExportSettings()
        self.events = events or LibraryEvents()
        self._owns_store = store is None
        self.store = store or BindingStore(storage)
        self.git = git or GitAdapter(self.settings)
        self.queue = SyncQueue(
            self.store,
            exporter,
            library,
            self.git,
            self.settings,
            self.events,
        )
        self.gate = IdleGate(self.queue, self.settings, self.events)
        self.estimator = ProgressEstimator(self.store, library, exporter, cache, self.settings)
        self.progress: dict[str, int] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._started = False

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def start(self) -> None:
        """Prepare storage, queue unfinished bindings and start listening."""
        if self._started:
            return
        await self.store.init()

        self.events.libraries_changed.connect(self._on_libraries_changed)
        self.events.libraries_removed.connect(self._on_libraries_removed)
        self.events.collections_changed.connect(self._on_collections_changed)
        self.events.collections_removed.connect(self._on_collections_removed)
        self.events.export_progress.connect(self._on_progress)

        pending = await self.store.pending_paths()
        for path in pending:
            self.queue.add(path)
        if pending:
            logger.info("Re-queued unfinished auto-exports", count=len(pending))

        self.gate.start()
        self._started = True

    async def stop(self) -> None:
        """Stop listening, drop pending runs and cancel runs in progress."""
        if not self._started:
            return
        self._started = False
        self.gate.stop()
        self.events.libraries_changed.disconnect(self._on_libraries_changed)
        self.events.libraries_removed.disconnect(self._on_libraries_removed)
        self.events.collections_changed.disconnect(self._on_collections_changed)
        self.events.collections_removed.disconnect(self._on_collections_removed)
        self.events.export_progress.disconnect(self._on_progress)

        self.queue.pause("shutdown")
        await self.queue.shutdown()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_store:
            await self.store.close()

    async def add(
        self,
        path: str,
        *,
        scope_type: ScopeType,
        scope_id: int,
        exporter_id: str,
        recursive: bool = False,
        export_notes: bool | None = None,
        use_journal_abbreviation: bool | None = None,
        preferences: dict[str, Any] | None = None,
        schedule: bool = False,
    ) -> AutoExportBinding:
        """Add or replace the binding for ``path``.

        The exporter's relevant preferences are snapshotted from the global
        settings unless given explicitly; display options default to the
        exporter's defaults. Bindings inside a published git repository get an
        initial run, as do all bindings when ``schedule`` is set.

        Raises:
            ConfigurationError: If the exporter is unknown
        """
        exporter = self.exporter.get_exporter(exporter_id)
        if exporter is None:
            msg = f"Unknown exporter {exporter_id!r}"
            raise ConfigurationError(msg)

        overrides = preferences or {}
        snapshot: dict[str, Any] = {}
        for key in exporter.preferences:
            if overrides.get(key) is not None:
                snapshot[key] = overrides[key]
            elif key in self.settings.export_preferences:
                snapshot[key] = self.settings.export_preferences[key]

        defaults = exporter.display_options
        binding = AutoExportBinding(
            path=path,
            scope_type=scope_type,
            scope_id=scope_id,
            exporter_id=exporter_id,
            recursive=recursive,
            status="scheduled",
            error="",
            export_notes=bool(
                defaults.get("export_notes", False) if export_notes is None else export_notes
            ),
            use_journal_abbreviation=bool(
                defaults.get("use_journal_abbreviation", False)
                if use_journal_abbreviation is None
                else use_journal_abbreviation
            ),
            preferences=snapshot,
        )
        stored = await self.store.upsert(binding)

        try:
            published = self.git.locate(path).enabled
        except ConfigurationError:
            logger.exception("Could not resolve git repository", path=path)
            published = False
        if published or schedule:
            await self.schedule(scope_type, [scope_id])
        return stored

    async def schedule(self, scope_type: ScopeType, ids: Iterable[int]) -> list[str]:
        """Queue runs for every binding on the given scopes.

        Returns:
            Paths that were queued
        """
        paths = await self.store.list_paths(scope_type, ids)
        if not paths:
            return []
        idle = [path for path in paths if not self.queue.is_running(path)]
        await self.store.set_status(idle, "scheduled")
        for path in paths:
            self.queue.add(path)
        return paths

    async def get(self, path: str) -> AutoExportBinding | None:
        return await self.store.get(path)

    async def list_bindings(self) -> list[AutoExportBinding]:
        """All bindings ordered by path."""
        return await self.store.list_bindings()

    async def remove(self, path: str) -> None:
        """Remove the binding for ``path``. Unknown paths are ignored."""
        await self._remove([path])

    async def remove_scope(self, scope_type: ScopeType, ids: Iterable[int]) -> None:
        """Remove every binding on the given scopes."""
        ids = list(ids)
        if not ids:
            return
        await self._remove(await self.store.list_paths(scope_type, ids))

    async def remove_all(self) -> None:
        self.queue.clear()
        self.progress.clear()
        await self.store.delete_all()

    async def _remove(self, paths: list[str]) -> None:
        for path in paths:
            self.queue.cancel(path)
            self.progress.pop(path, None)
        await self.store.delete(paths)

    async def run(self, path: str) -> asyncio.Task[RunStatus | None] | None:
        """Run the binding for ``path`` now, bypassing the delay and idle gate.

        Returns:
            The running task, or None if the path is unknown or already running
        """
        if await self.store.get(path) is None:
            logger.debug("Ignoring run for unknown auto-export", path=path)
            return None
        self.queue.cancel(path)
        return self.queue.run(path)

    def progress_for(self, path: str) -> int | None:
        """Last known progress for ``path``."""
        return self.progress.get(path)

    async def estimate(self, path: str) -> int:
        """Estimate the completion of ``path`` from the export cache and remember it."""
        pct = await self.estimator.estimate(path)
        self.progress[path] = pct
        return pct

    def _on_progress(self, path: str, pct: int, message: str) -> None:
        self.progress[path] = pct

    def _on_libraries_changed(self, ids: list[int]) -> None:
        self._spawn(self.schedule("library", ids))

    def _on_libraries_removed(self, ids: list[int]) -> None:
        self._spawn(self.remove_scope("library", ids))

    def _on_collections_changed(self, ids: list[int]) -> None:
        self._spawn(self.schedule("collection", ids))

    def _on_collections_removed(self, ids: list[int]) -> None:
        self._spawn(self.remove_scope("collection", ids))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and (exc := task.exception()):
            logger.error("Auto-export event handling failed", exc_info=exc)

    async def wait(self) -> None:
        """Wait until event handling and runs in progress have finished."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.queue.wait()
