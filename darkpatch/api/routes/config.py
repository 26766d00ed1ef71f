"""Read-only view of the active threshold policy."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("/thresholds")
async def get_thresholds(request: Request) -> dict[str, Any]:
    return request.app.state.policy.as_dict()
