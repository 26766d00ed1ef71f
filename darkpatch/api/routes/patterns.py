"""Feedback ledger and pattern store endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from darkpatch.api.dependencies import get_available_store, get_store
from darkpatch.api.models import FeedbackRequest, FeedbackResponse, ImportRequest, ImportResponse
from darkpatch.contracts.models import StoreDocument
from darkpatch.errors import PersistenceError
from darkpatch.learning.pattern_store import PatternStore
from darkpatch.learning.report import LearningReport, build_learning_report
from darkpatch.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["patterns"])


def _persistence_failed(e: PersistenceError) -> HTTPException:
    logger.error("Pattern store write failed: %s", e)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Pattern store unavailable: {e}",
    )


@router.post("/feedback", response_model=FeedbackResponse)
async def record_feedback(
    request: FeedbackRequest,
    store: PatternStore = Depends(get_available_store),
) -> FeedbackResponse:
    """Append one rating to the ledger and return the recomputed record."""
    try:
        record = store.record_feedback(
            request.signature,
            request.patch_id,
            request.rating,
            rule_text=request.rule_text,
            domain=request.domain,
        )
    except PersistenceError as e:
        raise _persistence_failed(e) from e
    return FeedbackResponse(record=record)


@router.get("/patterns/export", response_model=StoreDocument)
async def export_patterns(store: PatternStore = Depends(get_available_store)) -> StoreDocument:
    return store.export_document()


@router.post("/patterns/import", response_model=ImportResponse)
async def import_patterns(
    request: ImportRequest,
    store: PatternStore = Depends(get_available_store),
) -> ImportResponse:
    try:
        total = store.import_document(request.document, merge=request.merge)
    except PersistenceError as e:
        raise _persistence_failed(e) from e
    return ImportResponse(ledger_entries=total, signatures=len(store.records()))


@router.get("/patterns/report", response_model=LearningReport)
async def learning_report(store: PatternStore = Depends(get_store)) -> LearningReport:
    """Summary statistics; served from memory even while the store is degraded."""
    return build_learning_report(store)
