"""Test configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from autoexport import (
    AutoExportManager,
    AutoExportSettings,
    BindingStore,
    Collection,
    ExporterInfo,
    Item,
    LibraryEvents,
    StorageConfig,
)


if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from autoexport import CacheFingerprint, ExportJob
    from autoexport.models import RunStatus


TEST_DELAY = 0.02
MEMORY_DB = "sqlite+aiosqlite:///:memory:"

BIBTEX = ExporterInfo(
    id="bbt",
    label="Better BibTeX",
    extension="bib",
    preferences=("asciiBibTeX", "bibtexURL"),
    display_options={"export_notes": False, "use_journal_abbreviation": True},
)
CSL_JSON = ExporterInfo(id="csl", label="Better CSL JSON", extension="json")


class FakeLibrary:
    """In-memory data store."""

    def __init__(self):
        self.collections: dict[int, Collection] = {}
        self.contents: dict[int, list[Item]] = {}
        self.libraries: dict[int, list[Item]] = {}

    def add_collection(
        self,
        collection_id: int,
        name: str,
        parent_id: int | None = None,
        library_id: int = 1,
        items: Iterable[Item] = (),
    ) -> Collection:
        collection = Collection(collection_id, name, parent_id, library_id)
        self.collections[collection_id] = collection
        self.contents[collection_id] = list(items)
        return collection

    async def top_collections(self, library_id: int) -> list[Collection]:
        return [
            c
            for c in self.collections.values()
            if c.library_id == library_id and c.parent_id is None
        ]

    async def child_collections(self, collection_id: int) -> list[Collection]:
        return [c for c in self.collections.values() if c.parent_id == collection_id]

    async def collection_items(self, collection_id: int) -> list[Item]:
        return self.contents.get(collection_id, [])

    async def library_items(self, library_id: int) -> list[Item]:
        return self.libraries.get(library_id, [])


class FakeExporter:
    """Records export jobs instead of writing files."""

    def __init__(self, *exporters: ExporterInfo):
        self.exporters = {e.id: e for e in exporters or (BIBTEX, CSL_JSON)}
        self.jobs: list[ExportJob] = []
        self.fail: dict[str, Exception] = {}
        self.release: asyncio.Event | None = None
        """When set, exports wait for this event."""

    def get_exporter(self, exporter_id: str) -> ExporterInfo | None:
        return self.exporters.get(exporter_id)

    async def export(self, job: ExportJob) -> None:
        await asyncio.sleep(0)
        if self.release is not None:
            await self.release.wait()
        if error := self.fail.get(job.path):
            raise error
        self.jobs.append(job)


class FakeCache:
    """Cache with explicit hit sets."""

    def __init__(self):
        self.serialized: set[int] = set()
        self.exported: dict[CacheFingerprint, set[int]] = {}

    def count_serialized(self, item_ids: Iterable[int]) -> int:
        return len(self.serialized.intersection(item_ids))

    def count_exported(self, fingerprint: CacheFingerprint, item_ids: Iterable[int]) -> int:
        return len(self.exported.get(fingerprint, set()).intersection(item_ids))


class RecordingStore(BindingStore):
    """Binding store that remembers every status write."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.transitions: list[tuple[str, RunStatus]] = []

    async def set_status(self, paths, status, *, error=None, touch=False):
        paths = [paths] if isinstance(paths, str) else list(paths)
        self.transitions.extend((path, status) for path in paths)
        await super().set_status(paths, status, error=error, touch=touch)

    def statuses(self, path: str) -> list[RunStatus]:
        return [status for p, status in self.transitions if p == path]


@pytest.fixture
def library() -> FakeLibrary:
    return FakeLibrary()


@pytest.fixture
def exporter() -> FakeExporter:
    return FakeExporter()


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def settings() -> AutoExportSettings:
    return AutoExportSettings(auto_export="immediate", git="off", git_pull_delay=0)


@pytest.fixture
def events() -> LibraryEvents:
    return LibraryEvents()


@pytest.fixture
async def store():
    """Create an in-memory binding store."""
    async with RecordingStore(StorageConfig(url=MEMORY_DB)) as s:
        yield s


@pytest.fixture
async def manager(
    store: RecordingStore,
    exporter: FakeExporter,
    library: FakeLibrary,
    cache: FakeCache,
    settings: AutoExportSettings,
    events: LibraryEvents,
):
    """Create a started manager with a short debounce delay."""
    m = AutoExportManager(
        exporter=exporter,
        library=library,
        cache=cache,
        settings=settings,
        events=events,
        store=store,
    )
    m.queue.scheduler.delay = TEST_DELAY
    async with m:
        yield m


@pytest.fixture
def wait_for_status(store: RecordingStore):
    """Poll until a binding reaches one of the given statuses."""

    async def wait(
        path: str,
        statuses: Iterable[str] = ("done", "error"),
        timeout: float = 2.0,
    ) -> str:
        wanted = set(statuses)
        async with asyncio.timeout(timeout):
            while True:
                binding = await store.get(path)
                if binding is not None and binding.status in wanted:
                    return binding.status
                await asyncio.sleep(TEST_DELAY / 2)

    return wait


@pytest.fixture
def fake_git(tmp_path: Path):
    """Factory for fake git executables that log their arguments."""

    def make(exit_code: int = 0) -> tuple[str, Path]:
        log = tmp_path / "git.log"
        script = tmp_path / "fake-git"
        script.write_text(
            "#!/bin/sh\n"
            f'echo "$@" >> "{log}"\n'
            f'[ {exit_code} -ne 0 ] && echo "fatal: no remote" >&2\n'
            f"exit {exit_code}\n"
        )
        script.chmod(0o755)
        return str(script), log

    return make
