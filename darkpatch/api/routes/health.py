"""Health check endpoints.

- /health       - service health including LLM credential presence
- /health/store - pattern store availability and size
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request

from darkpatch.config import APP_VERSION
from darkpatch.observability.telemetry import get_counters

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Service status, version, and Gemini credential readiness (no API call is made)."""
    has_api_key = bool(os.getenv("GOOGLE_API_KEY"))
    has_project = bool(os.getenv("GOOGLE_CLOUD_PROJECT"))

    return {
        "status": "healthy",
        "service": "darkpatch API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "generator": request.app.state.generator is not None,
        "llm": {
            "ready": has_api_key or has_project,
            "google_api_key": has_api_key,
            "google_cloud_project": has_project,
        },
    }


@router.get("/health/store")
async def store_health(request: Request) -> dict[str, Any]:
    store = request.app.state.store
    if store is None:
        return {"status": "unconfigured"}

    if not store.available:
        store.reload()

    return {
        "status": "healthy" if store.available else "degraded",
        "available": store.available,
        "last_error": store.last_error,
        "ledger_entries": len(store.ledger()),
        "signatures": len(store.records()),
        "counters": get_counters("pattern_store."),
    }
