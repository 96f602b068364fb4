"""Debounced run queue for auto-exports."""

from __future__ import annotations

import asyncio
from functools import partial
from typing import TYPE_CHECKING, Literal

from autoexport.debounce import Debouncer
from autoexport.exceptions import ConfigurationError
from autoexport.log import get_logger
from autoexport.models import ExportJob, Scope
from autoexport.paths import PathOptions, collection_output_path, collection_tree


if TYPE_CHECKING:
    from autoexport.config import AutoExportSettings
    from autoexport.events import LibraryEvents
    from autoexport.git import GitAdapter, GitResult
    from autoexport.models import ExporterInfo, RunStatus
    from autoexport.protocols import Exporter, Library
    from autoexport.storage import AutoExportBinding, BindingStore


logger = get_logger(__name__)

GateReason = Literal["startup", "shutdown", "start-of-idle", "end-of-idle", "preference-change"]


def binding_scope(binding: AutoExportBinding) -> Scope:
    """Get the export scope of a binding."""
    match binding.scope_type:
        case "collection":
            return Scope("collection", binding.scope_id)
        case "library":
            return Scope("library", binding.scope_id)
        case _:
            msg = f"Unexpected auto-export scope {binding.scope_type!r}"
            raise ConfigurationError(msg)


def commit_message(template: str, label: str) -> str:
    """Fill the exporter name into a commit message template.

    Only ``{type}`` is substituted, other braces are kept as written.
    """
    return template.replace("{type}", label.removeprefix("Better "))


def relevant_preferences(binding: AutoExportBinding, exporter: ExporterInfo) -> dict[str, object]:
    """Pick the preference overrides the exporter declares as relevant."""
    stored = binding.preferences or {}
    return {key: stored[key] for key in exporter.preferences if stored.get(key) is not None}


class SyncQueue:
    """Runs auto-exports for output paths after their changes have settled.

    Each output path is a debounce key. When its delay elapses the binding is
    exported: git pull, one export job per scope (plus one per descendant
    collection for recursive bindings), git push, and the final status is
    written back to the binding.

    The queue starts paused; the idle gate decides when it runs.
    """

    def __init__(
        self,
        store: BindingStore,
        exporter: Exporter,
        library: Library,
        git: GitAdapter,
        settings: AutoExportSettings,
        events: LibraryEvents,
    ):
        self.store = store
        self.exporter = exporter
        self.library = library
        self.git = git
        self.settings = settings
        self.events = events
        self.scheduler = Debouncer[str](settings.auto_export_delay, paused=True)
        self._running: dict[str, asyncio.Task[RunStatus | None]] = {}
        settings.events.auto_export_delay.connect(self._on_delay_changed)

    def _on_delay_changed(self, delay: float) -> None:
        self.scheduler.delay = delay

    @property
    def paused(self) -> bool:
        return self.scheduler.paused

    def pause(self, reason: GateReason) -> None:
        logger.debug("Pausing auto-export queue", reason=reason)
        self.scheduler.pause()

    def resume(self, reason: GateReason) -> None:
        logger.debug("Resuming auto-export queue", reason=reason)
        self.scheduler.resume()

    def add(self, path: str) -> None:
        """Request a run for ``path`` once its changes have settled."""
        logger.debug("Auto-export scheduled", path=path)
        self.scheduler.schedule(path, partial(self.run, path))

    def cancel(self, path: str) -> None:
        """Drop a pending run. Runs already in progress are not interrupted."""
        self.scheduler.cancel(path)

    def clear(self) -> None:
        self.scheduler.clear()

    def is_running(self, path: str) -> bool:
        return path in self._running

    def run(self, path: str) -> asyncio.Task[RunStatus | None] | None:
        """Start a run for ``path`` right away.

        If a run for the same path is still in progress, the request is queued
        again instead of running twice at once.

        Returns:
            The task executing the run, or None if it was re-queued
        """
        if path in self._running:
            logger.debug("Auto-export still running, re-queueing", path=path)
            self.add(path)
            return None
        task = asyncio.create_task(self._run_logged(path), name=f"autoexport:{path}")
        self._running[path] = task
        task.add_done_callback(lambda _: self._running.pop(path, None))
        return task

    async def wait(self) -> None:
        """Wait for all runs in progress to finish."""
        while self._running:
            await asyncio.gather(*self._running.values(), return_exceptions=True)

    async def shutdown(self) -> None:
        """Drop pending runs and cancel the ones in progress."""
        self.clear()
        tasks = list(self._running.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_logged(self, path: str) -> RunStatus | None:
        try:
            return await self.run_async(path)
        except Exception:
            logger.exception("Auto-export failed", path=path)
            return None

    async def run_async(self, path: str) -> RunStatus:
        """Export the binding for ``path`` and record the outcome.

        Failures of the export itself end up in the binding's error field, only
        storage failures propagate. When another run for ``path`` is already
        pending, the binding is stored as ``scheduled`` rather than finished.

        Returns:
            The outcome of this run
        """
        binding = await self.store.get(path)
        if binding is None:
            msg = f"Auto-export for {path!r} does not exist"
            raise ConfigurationError(msg)

        exporter = self.exporter.get_exporter(binding.exporter_id)
        label = exporter.label if exporter else binding.exporter_id
        self.events.export_progress.emit(path, 0, f"Starting {label}")
        await self.store.set_status(path, "running")
        logger.info("Auto-export started", path=path, exporter=label)

        error = ""
        try:
            if exporter is None:
                msg = f"Unknown exporter {binding.exporter_id!r}"
                raise ConfigurationError(msg)

            repo = self.git.locate(path)
            self._report(await repo.pull(), "Auto-export git pull failed")

            jobs = await self.build_jobs(binding, exporter)
            logger.debug("Submitting export jobs", path=path, jobs=len(jobs))
            results = await asyncio.gather(
                *(self.exporter.export(job) for job in jobs),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result

            message = commit_message(self.settings.git_message, label)
            self._report(await repo.push(message), "Auto-export git push failed")
        except Exception as e:
            logger.exception("Auto-export run failed", path=path, exporter=label)
            error = str(e) or type(e).__name__
            self.events.flash.emit("Auto-export failed", f"{path}: {error}")

        status: RunStatus = "error" if error else "done"
        # a change that arrived mid-run must survive a restart
        stored: RunStatus = "scheduled" if self.scheduler.is_pending(path) else status
        await self.store.set_status(path, stored, error=error, touch=True)
        logger.info("Auto-export finished", path=path, status=status, stored=stored)
        return status

    async def build_jobs(
        self,
        binding: AutoExportBinding,
        exporter: ExporterInfo,
    ) -> list[ExportJob]:
        """Build the export jobs for a binding.

        The first job exports the binding's own scope. Recursive bindings get
        one more job per descendant collection, written next to the main output
        under a name derived from the collection path.
        """
        scope = binding_scope(binding)
        main = ExportJob(
            exporter_id=binding.exporter_id,
            scope=scope,
            path=binding.path,
            auto_export=binding.path,
            display_options=binding.display_options,
            preferences=relevant_preferences(binding, exporter),
        )
        jobs = [main]
        if not binding.recursive:
            return jobs

        options = PathOptions.from_settings(self.settings)
        for collection, names in await collection_tree(self.library, scope):
            output = collection_output_path(binding.path, names, exporter.extension, options)
            jobs.append(
                ExportJob(
                    exporter_id=main.exporter_id,
                    scope=Scope("collection", collection.id),
                    path=output,
                    auto_export=binding.path,
                    display_options=dict(main.display_options),
                    preferences=dict(main.preferences),
                )
            )
        return jobs

    def _report(self, result: GitResult, title: str) -> None:
        if result.failed:
            self.events.flash.emit(title, result.message)
