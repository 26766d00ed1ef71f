"""
Engine - one page instance's scan / classify / synthesize / apply loop.

    ChangeMonitor → TreeScanner → DefectClassifier → PatchSynthesizer → PatchApplier
                                                      ↑
                         rate() → PatternStore (feedback ledger)

Every per-node and per-issue failure is contained here: it is logged, counted
and reported in the CycleReport, and the cycle moves on to the next item.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from darkpatch.classification.classifier import DefectClassifier, build_classifier
from darkpatch.config import MONITOR_DEBOUNCE_SECONDS, MONITOR_TICK_SECONDS
from darkpatch.contracts.models import FeedbackRating, PatternRecord
from darkpatch.contracts.types import Issue
from darkpatch.errors import ApplyError, ClassificationError
from darkpatch.host.tree import HostTree, Node
from darkpatch.learning.pattern_store import PatternStore
from darkpatch.learning.signature import generalize_rule
from darkpatch.llm.generator import Generator
from darkpatch.monitor.change_monitor import ChangeMonitor
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter, log_event, time_block
from darkpatch.patching.applier import PAGE_IDENTITY, ApplyOutcome, PatchApplier
from darkpatch.runtime.policy import Policy, get_policy
from darkpatch.runtime.scheduler import CycleScope
from darkpatch.runtime.state import RuntimeState
from darkpatch.scanning.scanner import TreeScanner
from darkpatch.synthesis.synthesizer import PatchSynthesizer, SynthesisResult

logger = get_logger(__name__)


@dataclass
class CycleReport:
    scope: str
    scanned: int = 0
    issues: int = 0
    changed: bool = True
    applied: int = 0
    unchanged: int = 0
    no_patch: int = 0
    generations: int = 0
    errors: list[str] = field(default_factory=list)
    skipped_reason: str = ""


@dataclass
class VerificationReport:
    remaining_issues: int
    patched_nodes: int
    problems: dict[str, int]
    is_working_well: bool


def status_confidence(problem_count: int) -> int:
    """100 with no problems, minus 10 per problem, floored at 20."""
    if problem_count == 0:
        return 100
    return max(20, 100 - 10 * problem_count)


class DarkPatchEngine:
    """Wires scanner, classifier, synthesizer, applier and monitor for one document."""

    def __init__(
        self,
        tree: HostTree,
        store: PatternStore | None = None,
        generator: Generator | None = None,
        classifier: DefectClassifier | None = None,
        policy: Policy | None = None,
        state: RuntimeState | None = None,
        debounce: float = MONITOR_DEBOUNCE_SECONDS,
        tick: float = MONITOR_TICK_SECONDS,
    ):
        self.tree = tree
        self.policy = policy or get_policy()
        self.state = state or RuntimeState()
        self.store = store
        self.scanner = TreeScanner(tree)
        self.classifier = classifier or build_classifier(
            "heuristic", policy=self.policy.classification
        )
        self.synthesizer = PatchSynthesizer(store=store, generator=generator, policy=self.policy)
        self.applier = PatchApplier(tree, self.state)
        self.monitor = ChangeMonitor(tree, self.run_cycle, debounce=debounce, tick=tick)
        self.last_issue_count = 0

    # --- lifecycle ---

    async def enable(self, domain: str | None = None) -> CycleReport:
        """Turn dark-mode patching on: mode marker, full cycle, then monitoring."""
        self.state.enable(domain)
        self.tree.set_mode_marker(True)
        if self.store is not None and not self.store.available:
            self.store.reload()

        report = await self.run_cycle(CycleScope.document())
        self.monitor.start()
        log_event("engine.enabled", domain=self.state.domain, applied=report.applied)
        return report

    async def disable(self) -> int:
        """
        Stop monitoring and remove every patch and marker.

        Raises:
            ApplyError: If some style blocks could not be removed (after trying all)
        """
        await self.monitor.stop()
        try:
            removed = self.applier.disable_all()
        finally:
            self.state.reset()
        log_event("engine.disabled", removed=removed)
        return removed

    # --- scan cycle ---

    def _scope_roots(self, scope: CycleScope) -> list[Node | None]:
        if scope.whole_document:
            return [None]
        roots = []
        for identity in sorted(scope.identities):
            node = self.tree.resolve(identity)
            if node is None:
                logger.debug("Mutated node %s is gone, skipping", identity)
                continue
            roots.append(node)
        return roots

    def detect(
        self, scope: CycleScope | None = None, force: bool = False
    ) -> tuple[list[Issue], int, list[str]]:
        """
        Scan and classify. Pure read.

        Returns:
            (issues, nodes scanned, error messages)
        """
        scope = scope or CycleScope.document()
        issues: dict[str, Issue] = {}
        errors: list[str] = []
        scanned = 0

        for root in self._scope_roots(scope):
            result = self.scanner.scan(root, force=force)
            scanned += len(result.snapshots)
            errors.extend(f"{e.node_identity}: {e}" for e in result.errors)

            for snapshot in result.snapshots:
                if snapshot.identity in issues:
                    continue
                try:
                    tags = self.classifier.classify(snapshot)
                except ClassificationError as e:
                    counter("engine.classification_error")
                    errors.append(f"{snapshot.identity}: {e}")
                    continue
                if tags:
                    issues[snapshot.identity] = Issue(
                        node_identity=snapshot.identity, tags=tags, snapshot=snapshot
                    )

        return list(issues.values()), scanned, errors

    async def run_cycle(self, scope: CycleScope) -> CycleReport:
        """One scan → classify → synthesize → apply pass over scope."""
        report = CycleReport(scope=scope.key)
        if not self.state.enabled:
            report.changed = False
            report.skipped_reason = "disabled"
            return report

        if self.store is not None and not self.store.available:
            self.store.reload()

        with time_block("engine.cycle.latency"):
            issues, report.scanned, report.errors = self.detect(scope)
            report.issues = len(issues)
            self.state.stats.cycles += 1
            self.state.stats.issues_seen += len(issues)
            if scope.whole_document:
                self.last_issue_count = len(issues)

            serialized = frozenset(issue.serialize() for issue in issues)
            if not self.state.issues_changed(scope.key, serialized):
                report.changed = False
                report.skipped_reason = "issue set unchanged"
                self.state.stats.skipped_unchanged += 1
                counter("engine.cycle_unchanged")
                return report

            retry_scope = False
            budget = self.policy.synthesis.max_generations_per_cycle
            for issue in issues:
                try:
                    result = await self.synthesizer.synthesize(
                        issue,
                        domain=self.state.domain,
                        allow_generation=report.generations < budget,
                    )
                except Exception as e:
                    counter("engine.synthesis_error")
                    logger.error("Synthesis failed for %s: %s", issue.node_identity, e)
                    report.errors.append(f"{issue.node_identity}: {e}")
                    continue

                if result.used_generation:
                    report.generations += 1
                if result.retry_later:
                    retry_scope = True
                self._apply_result(issue, result, report)

            if retry_scope:
                # Let the next cycle over this scope try the open issues again
                self.state.forget_scope(scope.key)

        self.state.stats.patches_applied += report.applied
        self.state.stats.patches_unchanged += report.unchanged
        self.state.stats.no_patch += report.no_patch
        self.state.stats.errors += len(report.errors)
        logger.info(
            "Cycle %s: scanned=%d issues=%d applied=%d unchanged=%d no_patch=%d errors=%d",
            report.scope,
            report.scanned,
            report.issues,
            report.applied,
            report.unchanged,
            report.no_patch,
            len(report.errors),
        )
        return report

    def _apply_result(self, issue: Issue, result: SynthesisResult, report: CycleReport) -> None:
        if result.patch is None:
            report.no_patch += 1
            logger.debug("No patch for %s: %s", issue.node_identity, result.reason)
            return
        try:
            outcome = self.applier.apply(result.patch, issue.node_identity)
        except ApplyError as e:
            counter("engine.apply_error")
            report.errors.append(f"{issue.node_identity}: {e}")
            return
        if outcome is ApplyOutcome.UNCHANGED:
            report.unchanged += 1
        else:
            report.applied += 1

    # --- feedback / verification ---

    def rate(self, node_identity: str, rating: FeedbackRating | str) -> PatternRecord:
        """
        Record user feedback for the patch active on node_identity.

        Raises:
            KeyError: No active patch on that node
            ValueError: The active patch is page-level and has no signature
            PersistenceError: The ledger could not be written
        """
        if self.store is None:
            raise ValueError("No pattern store configured")
        patch = self.state.applied.get(node_identity)
        if patch is None:
            raise KeyError(f"No active patch on {node_identity}")
        if patch.signature is None:
            raise ValueError(f"Patch on {node_identity} has no signature to learn from")

        return self.store.record_feedback(
            patch.signature,
            patch.patch_id,
            rating,
            rule_text=generalize_rule(patch.rule_text, patch.selector),
            domain=self.state.domain,
        )

    def verify(self) -> VerificationReport:
        """Forced rescan, patched nodes included."""
        issues, _, _ = self.detect(CycleScope.document(), force=True)
        problems: Counter[str] = Counter()
        for issue in issues:
            problems.update(tag.value for tag in issue.tags)
        report = VerificationReport(
            remaining_issues=len(issues),
            patched_nodes=len(self.state.applied),
            problems=dict(problems),
            is_working_well=len(issues) < self.policy.verification.working_well_max_issues,
        )
        log_event(
            "engine.verify",
            remaining=report.remaining_issues,
            working_well=report.is_working_well,
        )
        return report

    async def converse(self, description: str, page_summary: str = "") -> SynthesisResult:
        """Request a page-level patch and apply it when one comes back."""
        result = await self.synthesizer.converse(description, page_summary)
        if result.patch is not None:
            self.applier.apply(result.patch, PAGE_IDENTITY)
        return result

    def status(self) -> dict[str, Any]:
        return {
            "enabled": self.state.enabled,
            "domain": self.state.domain,
            "mode_marker": self.tree.mode_marker(),
            "applied_patches": len(self.state.applied),
            "problems_found": self.last_issue_count,
            "confidence": status_confidence(self.last_issue_count),
            "cycles": self.state.stats.cycles,
            "store_available": self.store.available if self.store is not None else None,
        }
