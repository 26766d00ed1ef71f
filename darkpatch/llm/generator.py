"""
Generative capability

A Generator turns one GenerationRequest (or a conversational request) into one
GenerationResult: success with patch text, or failure with status + message.
Generators never retry and never raise for remote problems; the caller owns
the timeout (asyncio.wait_for) and simply tries again on a later scan cycle.

    GeminiGenerator - calls the shared Gemini model in a worker thread
    ProxyGenerator  - POSTs to the darkpatch API proxy over httpx
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from darkpatch.config import GENERATION_CONVERSATION_TIMEOUT, GENERATION_ELEMENT_TIMEOUT
from darkpatch.contracts.models import GenerationRequest, PatchPayload
from darkpatch.errors import GenerationFailure
from darkpatch.llm import gemini
from darkpatch.llm.prompts import get_conversation_prompt, get_element_prompt
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter, log_event

logger = get_logger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    ok: bool
    patch_text: str | None = None
    status: str = "ok"
    message: str = ""

    @classmethod
    def success(cls, patch_text: str) -> GenerationResult:
        return cls(ok=True, patch_text=patch_text)

    @classmethod
    def failure(cls, status: str, message: str) -> GenerationResult:
        return cls(ok=False, status=status, message=message)

    @classmethod
    def from_error(cls, error: GenerationFailure) -> GenerationResult:
        return cls.failure(error.status, str(error))


@runtime_checkable
class Generator(Protocol):
    async def generate(self, request: GenerationRequest) -> GenerationResult: ...

    async def converse(self, description: str, page_summary: str = "") -> GenerationResult: ...


def parse_patch_payload(response_text: str) -> PatchPayload:
    """
    Parse the model's JSON answer into a PatchPayload.

    Raises:
        GenerationFailure: status="malformed" when the text is not the expected JSON
    """
    json_text = (response_text or "").strip()
    if json_text.startswith("```"):
        json_text = re.sub(r"^```(?:json)?\n?", "", json_text)
        json_text = re.sub(r"\n?```$", "", json_text)

    try:
        data = json.loads(json_text)
        return PatchPayload.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        counter("generator.parse_error")
        raise GenerationFailure(f"Malformed generator payload: {e}", status="malformed") from e


class GeminiGenerator:
    """In-process generation with the shared Gemini model."""

    name = "gemini"

    async def _run(self, prompt: str, kind: str) -> GenerationResult:
        try:
            response_text = await asyncio.to_thread(gemini.generate_text, prompt)
            payload = parse_patch_payload(response_text)
        except GenerationFailure as e:
            return GenerationResult.from_error(e)
        except Exception as e:
            counter("generator.gemini.error")
            logger.error("Gemini %s generation failed: %s", kind, e)
            log_event("generator.error", backend=self.name, kind=kind, error=str(e))
            return GenerationResult.failure("error", str(e))

        counter("generator.gemini.success")
        return GenerationResult.success(payload.patch_text)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        return await self._run(get_element_prompt(request), "element")

    async def converse(self, description: str, page_summary: str = "") -> GenerationResult:
        prompt = get_conversation_prompt(description=description, page_summary=page_summary)
        return await self._run(prompt, "conversation")


class ProxyGenerator:
    """
    Generation through the darkpatch API proxy (POST /api/generate, /api/converse).

    Args:
        base_url: Proxy root, e.g. http://localhost:8000
        transport: Optional httpx transport (tests use httpx.MockTransport)
        element_timeout: Seconds allowed for /api/generate
        conversation_timeout: Seconds allowed for /api/converse
    """

    name = "proxy"

    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        element_timeout: float = GENERATION_ELEMENT_TIMEOUT,
        conversation_timeout: float = GENERATION_CONVERSATION_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.element_timeout = element_timeout
        self.conversation_timeout = conversation_timeout

    async def _post(self, path: str, body: dict[str, Any], timeout: float) -> GenerationResult:
        async with httpx.AsyncClient(
            base_url=self.base_url, transport=self.transport, timeout=httpx.Timeout(timeout)
        ) as client:
            try:
                response = await client.post(path, json=body)
            except httpx.TimeoutException:
                counter("generator.proxy.timeout")
                logger.warning("Generator proxy timed out: %s%s", self.base_url, path)
                return GenerationResult.failure("timeout", "Generator proxy timed out")
            except httpx.RequestError as e:
                counter("generator.proxy.error")
                logger.error("Generator proxy request failed: %s", e)
                return GenerationResult.failure("unavailable", str(e))

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200:
            counter("generator.proxy.http_error")
            message = data.get("message") or data.get("detail") or response.text
            logger.warning("Generator proxy returned %s: %s", response.status_code, message)
            return GenerationResult.failure(str(data.get("status", response.status_code)), str(message))

        try:
            payload = PatchPayload.model_validate(data)
        except ValidationError as e:
            counter("generator.parse_error")
            return GenerationResult.failure("malformed", f"Malformed proxy payload: {e}")

        counter("generator.proxy.success")
        return GenerationResult.success(payload.patch_text)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        return await self._post(
            "/api/generate", request.model_dump(mode="json"), self.element_timeout
        )

    async def converse(self, description: str, page_summary: str = "") -> GenerationResult:
        return await self._post(
            "/api/converse",
            {"description": description, "page_summary": page_summary},
            self.conversation_timeout,
        )


def build_generator(backend: str | None, base_url: str = "") -> Generator | None:
    """
    Construct the configured generator, or None for template-only synthesis.

    Raises:
        ValueError: Unknown backend, or "proxy" without a base URL
    """
    if not backend or backend == "none":
        return None
    if backend == "gemini":
        return GeminiGenerator()
    if backend == "proxy":
        if not base_url:
            raise ValueError("Proxy generator requires a base URL (DARKPATCH_GENERATOR_URL)")
        return ProxyGenerator(base_url)
    raise ValueError(f"Unknown generator backend: {backend!r}")
