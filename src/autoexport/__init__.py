"""Keep exported bibliography files in sync with a changing library.

This package provides:
- Persistent auto-export bindings (library or collection -> output file)
- Debounced scheduling of exports when the library changes
- Optional git pull/push around each export
- Pausing exports until the user is idle
- Cache-based progress estimates
"""

from __future__ import annotations

from importlib.metadata import version

from autoexport.config import AutoExportSettings, StorageConfig
from autoexport.debounce import Debouncer
from autoexport.events import LibraryEvents
from autoexport.exceptions import AutoExportError, ConfigurationError, GitError
from autoexport.git import GitAdapter, GitRepo, GitResult
from autoexport.idle import IdleGate, decide
from autoexport.log import configure_logging, get_logger
from autoexport.manager import AutoExportManager
from autoexport.models import (
    CacheFingerprint,
    Collection,
    ExporterInfo,
    ExportJob,
    Item,
    Scope,
)
from autoexport.paths import PathOptions, collection_output_path, sanitize_segment
from autoexport.progress import ProgressEstimator
from autoexport.protocols import ExportCache, Exporter, Library
from autoexport.queue import SyncQueue
from autoexport.storage import AutoExportBinding, BindingStore

__version__ = version("autoexport")

__all__ = [
    # Service
    "AutoExportBinding",
    # Errors
    "AutoExportError",
    "AutoExportManager",
    # Config
    "AutoExportSettings",
    "BindingStore",
    # Models
    "CacheFingerprint",
    "Collection",
    "ConfigurationError",
    # Scheduling
    "Debouncer",
    # Collaborators
    "ExportCache",
    "ExportJob",
    "Exporter",
    "ExporterInfo",
    # Git
    "GitAdapter",
    "GitError",
    "GitRepo",
    "GitResult",
    "IdleGate",
    "Item",
    "Library",
    "LibraryEvents",
    # Paths
    "PathOptions",
    "ProgressEstimator",
    "Scope",
    "StorageConfig",
    "SyncQueue",
    "__version__",
    "collection_output_path",
    "configure_logging",
    "decide",
    "get_logger",
    "sanitize_segment",
]
