"""darkpatch - Find and patch dark-mode rendering defects in live document trees"""

from __future__ import annotations

__version__ = "1.0.0"


# Lazy imports so lightweight modules (colors, contracts) load without the engine stack
def __getattr__(name: str):
    if name == "DarkPatchEngine":
        from darkpatch.engine import DarkPatchEngine

        return DarkPatchEngine

    if name in ("PatternStore", "build_learning_report"):
        from darkpatch.learning import pattern_store, report

        if name == "PatternStore":
            return pattern_store.PatternStore
        return report.build_learning_report

    if name == "DocumentTree":
        from darkpatch.host.memory import DocumentTree

        return DocumentTree

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "DarkPatchEngine",
    "DocumentTree",
    "PatternStore",
    "build_learning_report",
]
