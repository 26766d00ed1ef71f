"""Generation proxy endpoints.

The page-side ProxyGenerator talks to these; they run the configured generator
(Gemini by default), apply the same conformance checks the engine does, and
answer with {"patchText": ...} or an error status.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from darkpatch.api.dependencies import get_generator
from darkpatch.api.models import ConverseRequest, ErrorResponse, PatchResponse
from darkpatch.config import GENERATION_CONVERSATION_TIMEOUT, GENERATION_ELEMENT_TIMEOUT
from darkpatch.contracts.models import GenerationRequest
from darkpatch.errors import GenerationFailure
from darkpatch.llm.generator import GenerationResult, Generator
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter, time_block
from darkpatch.synthesis.validation import check_patch_text

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["generate"])

FAILURE_STATUS_CODES = {
    "timeout": status.HTTP_504_GATEWAY_TIMEOUT,
    "malformed": status.HTTP_502_BAD_GATEWAY,
    "non_conforming": status.HTTP_502_BAD_GATEWAY,
}


def _failure(error: GenerationFailure) -> JSONResponse:
    counter(f"api.generate.failed.{error.status}")
    return JSONResponse(
        status_code=FAILURE_STATUS_CODES.get(error.status, status.HTTP_502_BAD_GATEWAY),
        content=ErrorResponse(status=error.status, message=str(error)).model_dump(),
    )


async def _await_result(awaitable, timeout: float) -> GenerationResult:
    try:
        result = await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise GenerationFailure(f"Generator timed out after {timeout}s", status="timeout") from e
    if not result.ok:
        raise GenerationFailure(result.message or "generation failed", status=result.status)
    return result


@router.post("/generate", response_model=PatchResponse, response_model_by_alias=True)
async def generate_patch(
    request: GenerationRequest,
    generator: Generator = Depends(get_generator),
):
    """Generate a style patch for one element."""
    try:
        with time_block("api.generate.latency"):
            result = await _await_result(generator.generate(request), GENERATION_ELEMENT_TIMEOUT)
        patch_text = check_patch_text(result.patch_text or "", set(request.problems))
    except GenerationFailure as e:
        logger.warning("Generation failed for %s: %s", request.identity_path, e)
        return _failure(e)

    counter("api.generate.success")
    return PatchResponse(patch_text=patch_text)


@router.post("/converse", response_model=PatchResponse, response_model_by_alias=True)
async def converse(
    request: ConverseRequest,
    generator: Generator = Depends(get_generator),
):
    """Generate a page-level patch from a free-text request."""
    try:
        result = await _await_result(
            generator.converse(request.description, request.page_summary),
            GENERATION_CONVERSATION_TIMEOUT,
        )
        patch_text = check_patch_text(result.patch_text or "")
    except GenerationFailure as e:
        logger.warning("Conversation generation failed: %s", e)
        return _failure(e)

    counter("api.converse.success")
    return PatchResponse(patch_text=patch_text)
