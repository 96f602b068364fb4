"""Exceptions for autoexport."""

from __future__ import annotations


class AutoExportError(Exception):
    """Base class for auto-export failures."""


class ConfigurationError(AutoExportError):
    """A binding cannot run as configured.

    Raised for unknown scope types, unknown exporters, missing bindings and
    output paths that do not sit inside their resolved repository root.
    """


class GitError(AutoExportError):
    """Git operation failed."""
