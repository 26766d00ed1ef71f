"""
Error taxonomy for the scan / synthesize / apply loop.

Every error here is contained where it happens: a failing node or issue is
skipped and logged, never allowed to abort the batch or the monitor loop.
"""

from __future__ import annotations


class DarkPatchError(Exception):
    """Base class for darkpatch errors."""


class ClassificationError(DarkPatchError):
    """Style data for a node could not be read or parsed; the node is skipped."""

    def __init__(self, message: str, node_identity: str | None = None) -> None:
        super().__init__(message)
        self.node_identity = node_identity


class GenerationFailure(DarkPatchError):
    """Remote generation failed, timed out, or returned a non-conforming payload."""

    def __init__(self, message: str, status: str = "error") -> None:
        super().__init__(message)
        self.status = status


class ApplyError(DarkPatchError):
    """The host rejected a style write; the patch stays unapplied."""

    def __init__(self, message: str, node_identity: str | None = None) -> None:
        super().__init__(message)
        self.node_identity = node_identity


class PersistenceError(DarkPatchError):
    """The key-value store could not be read or written."""
