"""Pydantic request/response models for the darkpatch API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from darkpatch.contracts.models import (
    FeedbackRating,
    PatternRecord,
    Signature,
    StoreDocument,
)
from darkpatch.config import PROMPT_DESCRIPTION_MAX_CHARS


class PatchResponse(BaseModel):
    """Successful generation. Serialized with the camelCase key clients expect."""

    model_config = ConfigDict(populate_by_name=True)

    patch_text: str = Field(serialization_alias="patchText")
    status: str = "ok"


class ErrorResponse(BaseModel):
    status: str
    message: str


class ConverseRequest(BaseModel):
    description: str = Field(min_length=1, max_length=PROMPT_DESCRIPTION_MAX_CHARS)
    page_summary: str = Field(default="", max_length=PROMPT_DESCRIPTION_MAX_CHARS)


class FeedbackRequest(BaseModel):
    signature: Signature
    patch_id: str = Field(min_length=1, max_length=100)
    rating: FeedbackRating
    rule_text: str | None = Field(default=None, max_length=20_000)
    domain: str | None = Field(default=None, max_length=253)


class FeedbackResponse(BaseModel):
    status: str = "recorded"
    record: PatternRecord


class ImportRequest(BaseModel):
    document: StoreDocument
    merge: bool = False


class ImportResponse(BaseModel):
    status: str = "imported"
    ledger_entries: int
    signatures: int
