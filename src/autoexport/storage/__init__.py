"""Binding persistence."""

from __future__ import annotations

from autoexport.storage.models import AutoExportBinding
from autoexport.storage.store import BindingStore

__all__ = ["AutoExportBinding", "BindingStore"]
