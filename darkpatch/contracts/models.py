"""
Domain models (Pydantic v2) for the pattern store and the generation boundary.

Everything that is persisted or crosses a process boundary (store document,
feedback ledger, generation request/response) is validated here. Per-cycle
objects that never leave the engine (snapshots, issues, patches) are plain
dataclasses in darkpatch.contracts.types.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

STORE_DOCUMENT_VERSION = "v1"


class ProblemTag(str, Enum):
    """Fixed taxonomy of dark-mode defects."""

    TRANSPARENT_MENU_BACKGROUND = "transparent_menu_background"
    POOR_CONTRAST = "poor_contrast"
    WHITE_BACKGROUND = "white_background"
    HIDDEN_CONTENT = "hidden_content"
    LOW_OPACITY = "low_opacity"
    LIGHT_BORDER = "light_border"


class PatchSource(str, Enum):
    LEARNED = "learned"
    GENERATED = "generated"
    TEMPLATE = "template"


class FeedbackRating(str, Enum):
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class Signature(BaseModel):
    """Pattern store key: (tag set, element kind, class set).

    Tags and classes are stored sorted and de-duplicated so that two issues
    with the same sets always produce the same key.
    """

    model_config = ConfigDict(frozen=True)

    tags: tuple[ProblemTag, ...]
    element: str
    classes: tuple[str, ...] = ()

    @field_validator("tags", mode="after")
    @classmethod
    def _normalize_tags(cls, value: tuple[ProblemTag, ...]) -> tuple[ProblemTag, ...]:
        if not value:
            raise ValueError("Signature requires at least one problem tag")
        return tuple(sorted(set(value), key=lambda tag: tag.value))

    @field_validator("element", mode="after")
    @classmethod
    def _normalize_element(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("Signature element must be non-empty")
        return value

    @field_validator("classes", mode="after")
    @classmethod
    def _normalize_classes(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(sorted({c.strip() for c in value if c and c.strip()}))

    @property
    def key(self) -> str:
        tags = ",".join(tag.value for tag in self.tags)
        return f"{tags}|{self.element}|{' '.join(self.classes)}"

    @classmethod
    def from_key(cls, key: str) -> Signature:
        try:
            tags, element, classes = key.split("|", 2)
        except ValueError as e:
            raise ValueError(f"Malformed signature key: {key!r}") from e
        return cls(
            tags=tuple(ProblemTag(tag) for tag in tags.split(",") if tag),
            element=element,
            classes=tuple(classes.split()),
        )

    def __str__(self) -> str:
        return self.key


class FeedbackEntry(BaseModel):
    """One append-only ledger row. Pattern records are derived from these."""

    model_config = ConfigDict(frozen=True)

    signature: Signature
    patch_id: str
    rating: FeedbackRating
    rule_text: str | None = None
    domain: str | None = None
    timestamp: float = Field(default_factory=time.time)

    @field_validator("domain", mode="after")
    @classmethod
    def _normalize_domain(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().lower()
        return value or None


class PatternRecord(BaseModel):
    """Derived, confidence-scored best-known rule for one signature (and domain)."""

    model_config = ConfigDict(frozen=True)

    signature: Signature
    rule_text: str | None = None
    success_count: int = Field(default=0, ge=0)
    failure_count: int = Field(default=0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    domain_scope: str | None = None

    @property
    def observations(self) -> int:
        return self.success_count + self.failure_count


class StoreDocument(BaseModel):
    """Portable export of the feedback ledger and the records derived from it."""

    version: str = Field(default=STORE_DOCUMENT_VERSION)
    exported_at: float = Field(default_factory=time.time)
    ledger: list[FeedbackEntry] = Field(default_factory=list)
    records: list[PatternRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_version(self) -> StoreDocument:
        if self.version != STORE_DOCUMENT_VERSION:
            raise ValueError(f"StoreDocument version must be '{STORE_DOCUMENT_VERSION}'")
        return self


class ParentContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    tag: str
    classes: list[str] = Field(default_factory=list)
    background: str | None = None


class GenerationRequest(BaseModel):
    """Payload sent to the generative capability for one element fix."""

    model_config = ConfigDict(frozen=True)

    tag: str
    classes: list[str] = Field(default_factory=list)
    identity_path: str
    selector: str
    element_kind: str = "generic"
    problems: list[ProblemTag] = Field(default_factory=list)
    structural_context: ParentContext | None = None
    style_sample: dict[str, Any] = Field(default_factory=dict)
    text_sample: str = ""
    description: str = ""


class PatchPayload(BaseModel):
    """The single structured payload returned by the generative capability."""

    patch_text: str = Field(
        validation_alias=AliasChoices("patchText", "patch_text", "darkModeCss"),
    )

    @field_validator("patch_text", mode="after")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()
