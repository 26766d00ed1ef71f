"""
Per-cycle value types.

Snapshots, issues and patches are created during a scan cycle and discarded
afterwards (patches live on in the applier registry until superseded). They
never cross a process boundary, so they are plain dataclasses rather than
pydantic models.
"""

from __future__ import annotations

import time
import uuid
import weakref
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from darkpatch.contracts.models import PatchSource, ProblemTag, Signature


@dataclass(frozen=True)
class Color:
    """sRGB colour with 0-255 channels and 0-1 alpha."""

    r: int
    g: int
    b: int
    alpha: float = 1.0

    @property
    def is_transparent(self) -> bool:
        return self.alpha == 0

    @property
    def is_opaque(self) -> bool:
        return self.alpha >= 1

    def to_css(self) -> str:
        if self.is_opaque:
            return f"rgb({self.r}, {self.g}, {self.b})"
        return f"rgba({self.r}, {self.g}, {self.b}, {self.alpha:g})"


TRANSPARENT = Color(0, 0, 0, 0.0)


@dataclass(frozen=True)
class BoundingBox:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True)
class ParentSnapshot:
    tag: str
    classes: tuple[str, ...] = ()
    background: Color = TRANSPARENT


@dataclass(frozen=True)
class StyleSnapshot:
    """Materialized style attributes of one node for one scan cycle."""

    identity: str
    tag: str
    element_id: str = ""
    classes: tuple[str, ...] = ()
    role: str = ""
    aria_modal: bool = False
    element_kind: str = "generic"
    background: Color = TRANSPARENT
    foreground: Color = Color(0, 0, 0)
    border_color: Color = TRANSPARENT
    border_style: str = "none"
    border_width: float = 0.0
    opacity: float = 1.0
    visibility: str = "visible"
    display: str = "block"
    position: str = "static"
    z_index: int | None = None
    box: BoundingBox = BoundingBox()
    viewport: tuple[float, float] = (1920.0, 1080.0)
    text: str = ""
    parent: ParentSnapshot | None = None
    raw_styles: Mapping[str, str] = field(default_factory=dict, hash=False)
    handle: weakref.ReferenceType[Any] | None = field(default=None, compare=False, repr=False)

    def style_sample(self) -> dict[str, str]:
        """Computed style values worth sending to a remote generator."""
        return dict(self.raw_styles)


@dataclass(frozen=True)
class Issue:
    node_identity: str
    tags: frozenset[ProblemTag]
    snapshot: StyleSnapshot
    timestamp: float = field(default_factory=time.time)

    @property
    def signature(self) -> Signature:
        return Signature(
            tags=tuple(self.tags),
            element=self.snapshot.element_kind,
            classes=self.snapshot.classes,
        )

    def serialize(self) -> str:
        """Stable text form for per-cycle set comparison (timestamp excluded)."""
        return f"{self.node_identity}::{self.signature.key}"


def new_patch_id(source: PatchSource) -> str:
    return f"{source.value}-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Patch:
    selector: str
    rule_text: str
    source_kind: PatchSource
    confidence: float
    signature: Signature | None = None
    patch_id: str = ""
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Patch confidence must be in [0, 1], got {self.confidence}")
        if not self.patch_id:
            object.__setattr__(self, "patch_id", new_patch_id(self.source_kind))

    def same_content(self, other: Patch) -> bool:
        """True when both patches would produce an identical style block."""
        return self.signature == other.signature and self.rule_text == other.rule_text
