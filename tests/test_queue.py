"""Tests for the auto-export run routine."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from autoexport import AutoExportBinding, ExportJob, GitAdapter, Scope
from autoexport.queue import commit_message


if TYPE_CHECKING:
    from conftest import FakeExporter, FakeLibrary, RecordingStore

    from autoexport import AutoExportManager


async def test_run_exports_binding(
    manager: AutoExportManager,
    exporter: FakeExporter,
    store: RecordingStore,
):
    await manager.add(
        "/out/lib.bib",
        scope_type="library",
        scope_id=1,
        exporter_id="bbt",
        preferences={"asciiBibTeX": True, "unrelated": 1},
    )

    status = await manager.queue.run_async("/out/lib.bib")

    assert status == "done"
    assert exporter.jobs == [
        ExportJob(
            exporter_id="bbt",
            scope=Scope("library", 1),
            path="/out/lib.bib",
            auto_export="/out/lib.bib",
            display_options={"export_notes": False, "use_journal_abbreviation": True},
            preferences={"asciiBibTeX": True},
        )
    ]
    assert store.statuses("/out/lib.bib")[-2:] == ["running", "done"]
    binding = await store.get("/out/lib.bib")
    assert binding is not None
    assert binding.error == ""
    assert binding.updated is not None


async def test_recursive_run_writes_collection_tree(
    manager: AutoExportManager,
    exporter: FakeExporter,
    library: FakeLibrary,
):
    """Test that a recursive binding gets one output per descendant collection."""
    library.add_collection(1, "A")
    library.add_collection(2, "B", parent_id=1)
    await manager.add(
        "/out/lib.bib",
        scope_type="library",
        scope_id=1,
        exporter_id="bbt",
        recursive=True,
    )

    assert await manager.queue.run_async("/out/lib.bib") == "done"

    outputs = {job.path: job.scope for job in exporter.jobs}
    assert outputs == {
        "/out/lib.bib": Scope("library", 1),
        "/out/lib-A.bib": Scope("collection", 1),
        "/out/lib-A-B.bib": Scope("collection", 2),
    }
    assert {job.auto_export for job in exporter.jobs} == {"/out/lib.bib"}


async def test_recursive_collection_run_uses_path_settings(
    manager: AutoExportManager,
    exporter: FakeExporter,
    library: FakeLibrary,
    settings,
):
    library.add_collection(1, "Thesis")
    library.add_collection(2, "Related Work", parent_id=1)
    library.add_collection(3, "Méthodes", parent_id=2)
    settings.path_replace_space = "_"
    settings.path_replace_dir_sep = "."
    settings.path_replace_diacritics = True
    await manager.add(
        "/out/thesis.bib",
        scope_type="collection",
        scope_id=1,
        exporter_id="bbt",
        recursive=True,
    )

    await manager.queue.run_async("/out/thesis.bib")

    assert sorted(job.path for job in exporter.jobs) == [
        "/out/thesis.Related_Work.Methodes.bib",
        "/out/thesis.Related_Work.bib",
        "/out/thesis.bib",
    ]


async def test_exporter_failure_is_recorded(
    manager: AutoExportManager,
    exporter: FakeExporter,
    store: RecordingStore,
    events,
):
    flashes: list[tuple[str, str]] = []
    events.flash.connect(lambda title, message: flashes.append((title, message)))
    exporter.fail["/out/lib.bib"] = RuntimeError("translator crashed")
    await manager.add("/out/lib.bib", scope_type="library", scope_id=1, exporter_id="bbt")

    status = await manager.queue.run_async("/out/lib.bib")

    assert status == "error"
    binding = await store.get("/out/lib.bib")
    assert binding is not None
    assert binding.status == "error"
    assert binding.error == "translator crashed"
    assert flashes == [("Auto-export failed", "/out/lib.bib: translator crashed")]


async def test_error_is_cleared_by_next_success(
    manager: AutoExportManager,
    exporter: FakeExporter,
    store: RecordingStore,
):
    exporter.fail["/out/lib.bib"] = RuntimeError("boom")
    await manager.add("/out/lib.bib", scope_type="library", scope_id=1, exporter_id="bbt")
    assert await manager.queue.run_async("/out/lib.bib") == "error"

    del exporter.fail["/out/lib.bib"]
    assert await manager.queue.run_async("/out/lib.bib") == "done"

    binding = await store.get("/out/lib.bib")
    assert binding is not None
    assert binding.error == ""


async def test_unknown_exporter(manager: AutoExportManager, store: RecordingStore):
    await store.upsert(
        AutoExportBinding(path="/out/x.bib", scope_type="library", scope_id=1, exporter_id="gone")
    )

    assert await manager.queue.run_async("/out/x.bib") == "error"
    binding = await store.get("/out/x.bib")
    assert binding is not None
    assert "gone" in binding.error


async def test_unknown_scope_type(manager: AutoExportManager, store: RecordingStore):
    await store.upsert(
        AutoExportBinding(path="/out/x.bib", scope_type="group", scope_id=1, exporter_id="bbt")
    )

    assert await manager.queue.run_async("/out/x.bib") == "error"
    binding = await store.get("/out/x.bib")
    assert binding is not None
    assert "group" in binding.error
    assert store.statuses("/out/x.bib") == ["running", "error"]


async def test_run_emits_start_progress(manager: AutoExportManager, events):
    progress: list[tuple[str, int, str]] = []
    events.export_progress.connect(lambda path, pct, msg: progress.append((path, pct, msg)))
    await manager.add("/out/lib.bib", scope_type="library", scope_id=1, exporter_id="bbt")

    await manager.queue.run_async("/out/lib.bib")

    assert progress == [("/out/lib.bib", 0, "Starting Better BibTeX")]
    assert manager.progress_for("/out/lib.bib") == 0


async def test_running_path_is_requeued(manager: AutoExportManager, exporter: FakeExporter):
    """Test that a second run request for a busy path waits for the first."""
    await manager.add("/out/lib.bib", scope_type="library", scope_id=1, exporter_id="bbt")

    first = manager.queue.run("/out/lib.bib")
    second = manager.queue.run("/out/lib.bib")

    assert first is not None
    assert second is None
    assert manager.queue.scheduler.is_pending("/out/lib.bib")
    assert await first == "done"
    manager.queue.cancel("/out/lib.bib")


async def test_output_outside_repository_fails_run(
    manager: AutoExportManager,
    exporter: FakeExporter,
    store: RecordingStore,
    settings,
    monkeypatch: pytest.MonkeyPatch,
):
    """Test that an output resolving outside its repository root is a run error."""
    await manager.add("/out/lib.bib", scope_type="library", scope_id=1, exporter_id="bbt")
    settings.git = "config"
    monkeypatch.setattr(GitAdapter, "_find_repository", staticmethod(lambda start: Path("/repo")))
    monkeypatch.setattr(GitAdapter, "_opted_in", staticmethod(lambda config: True))
    manager.queue.git = GitAdapter(settings, executable="/usr/bin/git")

    assert await manager.queue.run_async("/out/lib.bib") == "error"

    binding = await store.get("/out/lib.bib")
    assert binding is not None
    assert binding.status == "error"
    assert "not inside repository" in binding.error
    assert store.statuses("/out/lib.bib") == ["running", "error"]
    assert exporter.jobs == []


@pytest.mark.parametrize(
    ("template", "expected"),
    [
        ("{type} update", "BibTeX update"),
        ("{type} update {ticket}", "BibTeX update {ticket}"),
        ("{0}: {type}", "{0}: BibTeX"),
        ("auto-export", "auto-export"),
    ],
)
def test_commit_message(template: str, expected: str):
    assert commit_message(template, "Better BibTeX") == expected
