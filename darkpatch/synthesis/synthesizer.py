"""
Patch Synthesizer

Issue → Patch, or an explicit "no patch" with a reason. Decision order:

    1. Pattern store   - eligible learned record for the signature (domain bucket first)
    2. Generator       - one request, bounded by asyncio.wait_for, no retry
    3. Template table  - only when no generator is configured, gated by
                         element-type/domain confidence

While the pattern store is unavailable synthesis is template-only and every
template patch carries the degraded confidence.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from darkpatch.config import GENERATION_CONVERSATION_TIMEOUT, GENERATION_ELEMENT_TIMEOUT
from darkpatch.contracts.models import GenerationRequest, ParentContext, PatchSource, ProblemTag
from darkpatch.contracts.types import Issue, Patch
from darkpatch.errors import GenerationFailure
from darkpatch.learning.pattern_store import PatternStore
from darkpatch.learning.signature import instantiate_rule
from darkpatch.llm.generator import GenerationResult, Generator
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter, log_event
from darkpatch.patching.selectors import stable_selector
from darkpatch.runtime.policy import Policy, get_policy
from darkpatch.synthesis.templates import render_template, template_for
from darkpatch.synthesis.validation import check_patch_text

logger = get_logger(__name__)

PAGE_SELECTOR = ":root"

PROBLEM_DESCRIPTIONS: dict[ProblemTag, str] = {
    ProblemTag.TRANSPARENT_MENU_BACKGROUND: (
        "Overlay menu has a fully transparent background, so page content shows through it"
    ),
    ProblemTag.POOR_CONTRAST: "Text colour has too little contrast against its background",
    ProblemTag.WHITE_BACKGROUND: "Element keeps a near-white background in dark mode",
    ProblemTag.HIDDEN_CONTENT: "Element has text content but is visibility:hidden",
    ProblemTag.LOW_OPACITY: "Element is rendered at low opacity and is hard to see",
    ProblemTag.LIGHT_BORDER: "Element has a bright border that glares in dark mode",
}


@dataclass(frozen=True)
class SynthesisResult:
    patch: Patch | None = None
    reason: str = ""
    # The generator was called; counts against the cycle budget
    used_generation: bool = False
    # No patch now, but a later cycle may succeed (generator failure, budget spent)
    retry_later: bool = False

    @property
    def ok(self) -> bool:
        return self.patch is not None

    @classmethod
    def patched(
        cls, patch: Patch, reason: str = "", used_generation: bool = False
    ) -> SynthesisResult:
        return cls(
            patch=patch,
            reason=reason or patch.source_kind.value,
            used_generation=used_generation,
        )

    @classmethod
    def no_patch(
        cls, reason: str, used_generation: bool = False, retry_later: bool = False
    ) -> SynthesisResult:
        return cls(
            patch=None, reason=reason, used_generation=used_generation, retry_later=retry_later
        )


def describe_issue(issue: Issue) -> str:
    return "; ".join(
        PROBLEM_DESCRIPTIONS[tag] for tag in sorted(issue.tags, key=lambda t: t.value)
    )


def build_generation_request(issue: Issue, selector: str) -> GenerationRequest:
    snapshot = issue.snapshot
    parent = snapshot.parent
    return GenerationRequest(
        tag=snapshot.tag,
        classes=list(snapshot.classes),
        identity_path=snapshot.identity,
        selector=selector,
        element_kind=snapshot.element_kind,
        problems=sorted(issue.tags, key=lambda t: t.value),
        structural_context=(
            ParentContext(
                tag=parent.tag,
                classes=list(parent.classes),
                background=parent.background.to_css(),
            )
            if parent
            else None
        ),
        style_sample=snapshot.style_sample(),
        text_sample=snapshot.text,
        description=describe_issue(issue),
    )


class PatchSynthesizer:
    """Chooses learned, generated or template patches for issues."""

    def __init__(
        self,
        store: PatternStore | None = None,
        generator: Generator | None = None,
        policy: Policy | None = None,
        element_timeout: float = GENERATION_ELEMENT_TIMEOUT,
        conversation_timeout: float = GENERATION_CONVERSATION_TIMEOUT,
    ):
        self.store = store
        self.generator = generator
        self.policy = policy or get_policy()
        self.element_timeout = element_timeout
        self.conversation_timeout = conversation_timeout

    @property
    def degraded(self) -> bool:
        return self.store is not None and not self.store.available

    async def synthesize(
        self,
        issue: Issue,
        domain: str | None = None,
        allow_generation: bool = True,
    ) -> SynthesisResult:
        """
        Produce a patch for one issue.

        Args:
            issue: Classified issue
            domain: Site domain for domain-scoped learning
            allow_generation: False once the cycle's generation budget is spent;
                the issue is then deferred rather than template-patched

        Never raises for generator problems; they come back as no_patch.
        """
        snapshot = issue.snapshot
        selector = stable_selector(snapshot.tag, snapshot.element_id, snapshot.classes)
        signature = issue.signature

        if self.degraded:
            counter("synthesizer.degraded")
            return self._from_template(issue, selector, domain, degraded=True)

        if self.store is not None:
            record = self.store.lookup(signature, domain)
            if record is not None and record.rule_text:
                counter("synthesizer.learned")
                return SynthesisResult.patched(
                    Patch(
                        selector=selector,
                        rule_text=instantiate_rule(record.rule_text, selector),
                        source_kind=PatchSource.LEARNED,
                        confidence=record.confidence,
                        signature=signature,
                    )
                )

        if self.generator is not None:
            if not allow_generation:
                counter("synthesizer.generation_deferred")
                return SynthesisResult.no_patch("generation budget exhausted", retry_later=True)
            return await self._from_generator(issue, selector)

        return self._from_template(issue, selector, domain)

    async def _from_generator(self, issue: Issue, selector: str) -> SynthesisResult:
        request = build_generation_request(issue, selector)
        try:
            result = await self._call(
                self.generator.generate(request), self.element_timeout  # type: ignore[union-attr]
            )
            if not result.ok:
                raise GenerationFailure(result.message or "generation failed", status=result.status)
            rule_text = check_patch_text(result.patch_text or "", issue.tags)
        except GenerationFailure as e:
            counter(f"synthesizer.generation_failed.{e.status}")
            logger.info("No generated patch for %s (%s): %s", issue.node_identity, e.status, e)
            log_event(
                "synthesizer.generation_failed",
                node=issue.node_identity,
                status=e.status,
                error=str(e),
            )
            return SynthesisResult.no_patch(
                f"generation {e.status}: {e}", used_generation=True, retry_later=True
            )

        counter("synthesizer.generated")
        return SynthesisResult.patched(
            Patch(
                selector=selector,
                rule_text=rule_text,
                source_kind=PatchSource.GENERATED,
                confidence=self.policy.synthesis.generated_confidence,
                signature=issue.signature,
            ),
            used_generation=True,
        )

    async def _call(self, awaitable, timeout: float) -> GenerationResult:
        """
        Await a generator call with a timeout.

        The remote side is not told about a timeout; the request is just abandoned.

        Raises:
            GenerationFailure: status="timeout"
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise GenerationFailure(f"Generator timed out after {timeout}s", status="timeout") from e

    def template_confidence(self, element_kind: str, prior: float, domain: str | None) -> float:
        synthesis = self.policy.synthesis
        confidence = prior
        if self.store is not None:
            stats = self.store.element_type_stats(element_kind)
            if stats.observations and stats.effectiveness >= synthesis.element_effectiveness_bonus_min:
                confidence += synthesis.element_effectiveness_bonus
            if self.store.domain_sample_count(domain) >= self.policy.learning.domain_min_samples:
                confidence += synthesis.domain_bonus
        return max(0.0, min(1.0, confidence))

    def _from_template(
        self,
        issue: Issue,
        selector: str,
        domain: str | None,
        degraded: bool = False,
    ) -> SynthesisResult:
        snapshot = issue.snapshot
        template = template_for(snapshot.element_kind, issue.tags)
        synthesis = self.policy.synthesis

        if degraded:
            confidence = synthesis.degraded_confidence
        else:
            confidence = self.template_confidence(snapshot.element_kind, template.prior, domain)

        if confidence < synthesis.template_min_confidence:
            counter("synthesizer.template_gated")
            return SynthesisResult.no_patch(
                f"template confidence {confidence:.2f} below {synthesis.template_min_confidence}"
            )

        counter("synthesizer.template")
        return SynthesisResult.patched(
            Patch(
                selector=selector,
                rule_text=render_template(template, selector),
                source_kind=PatchSource.TEMPLATE,
                confidence=confidence,
                signature=issue.signature,
            ),
            reason="degraded template" if degraded else f"template:{template.name}",
        )

    async def converse(self, description: str, page_summary: str = "") -> SynthesisResult:
        """Page-level patch from a free-text request (conversation timeout)."""
        if self.generator is None:
            return SynthesisResult.no_patch("no generator configured")
        if not description.strip():
            return SynthesisResult.no_patch("empty description")

        try:
            result = await self._call(
                self.generator.converse(description, page_summary), self.conversation_timeout
            )
            if not result.ok:
                raise GenerationFailure(result.message or "generation failed", status=result.status)
            rule_text = check_patch_text(result.patch_text or "")
        except GenerationFailure as e:
            counter(f"synthesizer.conversation_failed.{e.status}")
            logger.info("Conversation produced no patch (%s): %s", e.status, e)
            return SynthesisResult.no_patch(f"generation {e.status}: {e}")

        counter("synthesizer.conversation")
        return SynthesisResult.patched(
            Patch(
                selector=PAGE_SELECTOR,
                rule_text=rule_text,
                source_kind=PatchSource.GENERATED,
                confidence=self.policy.synthesis.generated_confidence,
            )
        )
