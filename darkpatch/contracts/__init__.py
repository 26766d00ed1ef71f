"""
Type contracts for darkpatch

models.py - persisted / wire models (pydantic)
types.py  - per-cycle value objects (dataclasses)

Re-exports for convenience:
"""

from darkpatch.contracts.models import (
    FeedbackEntry,
    FeedbackRating,
    GenerationRequest,
    ParentContext,
    PatchPayload,
    PatchSource,
    PatternRecord,
    ProblemTag,
    Signature,
    StoreDocument,
)
from darkpatch.contracts.types import (
    TRANSPARENT,
    BoundingBox,
    Color,
    Issue,
    ParentSnapshot,
    Patch,
    StyleSnapshot,
)

__all__ = [
    # Wire / persisted models
    "FeedbackEntry",
    "FeedbackRating",
    "GenerationRequest",
    "ParentContext",
    "PatchPayload",
    "PatchSource",
    "PatternRecord",
    "ProblemTag",
    "Signature",
    "StoreDocument",
    # Per-cycle values
    "TRANSPARENT",
    "BoundingBox",
    "Color",
    "Issue",
    "ParentSnapshot",
    "Patch",
    "StyleSnapshot",
]
