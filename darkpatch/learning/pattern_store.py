"""
Pattern Store & Feedback Ledger

The ledger is the only source of truth: an append-only list of FeedbackEntry.
Pattern records (global per signature, and per (domain, signature)) are derived
from it and never edited directly, so import/export and restarts reproduce the
same confidences and rule selections.

    confidence = successes / (successes + failures)   (0 with no observations)
    rule_text  = most frequent successful rule text; ties go to the most recent

Persistence is one document under key "ledger" in the configured namespace.
When the backend fails the store marks itself unavailable: lookups return
None (callers fall back to templates) and feedback keeps accumulating in memory
until reload() succeeds and merges it back.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from darkpatch.contracts.models import (
    FeedbackEntry,
    FeedbackRating,
    PatternRecord,
    Signature,
    StoreDocument,
)
from darkpatch.errors import PersistenceError
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter, log_event
from darkpatch.runtime.policy import Policy, get_policy
from darkpatch.storage.kv import KeyValueStore

logger = get_logger(__name__)

LEDGER_KEY = "ledger"


def compute_confidence(success_count: int, failure_count: int) -> float:
    total = success_count + failure_count
    if total == 0:
        return 0.0
    return max(0.0, min(1.0, success_count / total))


def select_rule_text(entries: Iterable[FeedbackEntry]) -> str | None:
    """Majority vote by literal equality over successful rule texts."""
    votes: Counter[str] = Counter()
    latest: dict[str, tuple[float, int]] = {}
    for position, entry in enumerate(entries):
        if entry.rating is not FeedbackRating.UP or not entry.rule_text:
            continue
        votes[entry.rule_text] += 1
        latest[entry.rule_text] = (entry.timestamp, position)

    if not votes:
        return None
    return max(votes, key=lambda text: (votes[text], latest[text]))


def derive_record(
    signature: Signature,
    entries: list[FeedbackEntry],
    domain: str | None = None,
) -> PatternRecord:
    successes = sum(1 for e in entries if e.rating is FeedbackRating.UP)
    failures = sum(1 for e in entries if e.rating is FeedbackRating.DOWN)
    return PatternRecord(
        signature=signature,
        rule_text=select_rule_text(entries),
        success_count=successes,
        failure_count=failures,
        confidence=compute_confidence(successes, failures),
        domain_scope=domain,
    )


def _entry_identity(entry: FeedbackEntry) -> tuple[Any, ...]:
    return (entry.signature.key, entry.patch_id, entry.rating, entry.domain, entry.timestamp)


@dataclass(frozen=True)
class ElementStats:
    """Aggregated feedback for one element kind across all signatures."""

    element: str
    success_count: int = 0
    failure_count: int = 0

    @property
    def observations(self) -> int:
        return self.success_count + self.failure_count

    @property
    def effectiveness(self) -> float:
        return compute_confidence(self.success_count, self.failure_count)


class PatternStore:
    """Confidence-scored map from signature to best-known rule text."""

    def __init__(self, kv: KeyValueStore, policy: Policy | None = None):
        self.kv = kv
        self.policy = policy or get_policy()
        self._ledger: list[FeedbackEntry] = []
        self._global: dict[str, PatternRecord] = {}
        self._domain: dict[tuple[str, str], PatternRecord] = {}
        self._loaded = False
        self.available = False
        self.last_error: str | None = None

    # --- persistence ---

    def load(self) -> None:
        """
        Load the persisted ledger and merge any entries recorded while unavailable.

        Raises:
            PersistenceError: If the backend cannot be read or holds a corrupt document
        """
        try:
            raw = self.kv.get(LEDGER_KEY)
            persisted = StoreDocument.model_validate(raw).ledger if raw else []
        except ValidationError as e:
            self._mark_unavailable(f"corrupt ledger document: {e}")
            raise PersistenceError(f"Corrupt ledger document: {e}") from e
        except PersistenceError as e:
            self._mark_unavailable(str(e))
            raise

        pending = self._ledger
        known = {_entry_identity(e) for e in persisted}
        unsynced = [e for e in pending if _entry_identity(e) not in known]
        self._ledger = list(persisted) + unsynced
        self._rebuild()
        self._loaded = True
        self.available = True
        self.last_error = None

        if unsynced:
            logger.info("Merging %d feedback entries recorded while store was unavailable", len(unsynced))
            self._flush()

        logger.info(
            "Pattern store loaded: %d entries, %d signatures", len(self._ledger), len(self._global)
        )

    def reload(self) -> bool:
        """Retry load(); True when the store is available again."""
        try:
            self.load()
        except PersistenceError as e:
            logger.warning("Pattern store still unavailable: %s", e)
            return False
        return True

    def _flush(self) -> None:
        if not self._loaded:
            # Never overwrite a document we have not read
            self.load()
            return
        try:
            self.kv.set(LEDGER_KEY, self.export_document().model_dump(mode="json"))
        except PersistenceError as e:
            self._mark_unavailable(str(e))
            raise

    def _mark_unavailable(self, reason: str) -> None:
        if self.available or self.last_error is None:
            logger.error("Pattern store unavailable, degrading to templates: %s", reason)
        counter("pattern_store.unavailable")
        self.available = False
        self.last_error = reason

    # --- feedback ---

    def record_feedback(
        self,
        signature: Signature,
        patch_id: str,
        rating: FeedbackRating | str,
        rule_text: str | None = None,
        domain: str | None = None,
    ) -> PatternRecord:
        """
        Append a ledger entry and recompute the signature's records.

        The entry is kept in memory even when persisting fails.

        Raises:
            PersistenceError: If the ledger cannot be written
        """
        entry = FeedbackEntry(
            signature=signature,
            patch_id=patch_id,
            rating=FeedbackRating(rating),
            rule_text=rule_text,
            domain=domain,
        )
        self._ledger.append(entry)
        record = self._recompute(entry.signature, entry.domain)

        counter(f"pattern_store.feedback.{entry.rating.value}")
        log_event(
            "pattern_store.feedback",
            signature=signature.key,
            rating=entry.rating.value,
            confidence=record.confidence,
            domain=entry.domain,
        )

        self._flush()
        return record

    def _recompute(self, signature: Signature, domain: str | None) -> PatternRecord:
        key = signature.key
        entries = [e for e in self._ledger if e.signature.key == key]
        record = derive_record(signature, entries)
        self._global[key] = record

        if domain:
            domain_entries = [e for e in entries if e.domain == domain]
            self._domain[(domain, key)] = derive_record(signature, domain_entries, domain)
        return record

    def _rebuild(self) -> None:
        by_signature: dict[str, list[FeedbackEntry]] = defaultdict(list)
        by_domain: dict[tuple[str, str], list[FeedbackEntry]] = defaultdict(list)
        for entry in self._ledger:
            by_signature[entry.signature.key].append(entry)
            if entry.domain:
                by_domain[(entry.domain, entry.signature.key)].append(entry)

        self._global = {
            key: derive_record(entries[0].signature, entries)
            for key, entries in by_signature.items()
        }
        self._domain = {
            (domain, key): derive_record(entries[0].signature, entries, domain)
            for (domain, key), entries in by_domain.items()
        }

    # --- queries ---

    def _eligible(self, record: PatternRecord | None) -> bool:
        synthesis = self.policy.synthesis
        return (
            record is not None
            and record.rule_text is not None
            and record.confidence >= synthesis.learned_min_confidence
        )

    def lookup(self, signature: Signature, domain: str | None = None) -> PatternRecord | None:
        """
        Best eligible record for signature, or None.

        The signature needs learned_min_observations overall. A domain bucket
        with at least domain_min_samples observations is trusted over the global
        record (its verdict wins even when it is not eligible); otherwise the
        global record is used.
        """
        if not self.available:
            return None

        key = signature.key
        global_record = self._global.get(key)
        if global_record is None:
            return None
        if global_record.observations < self.policy.synthesis.learned_min_observations:
            return None

        if domain:
            domain_record = self._domain.get((domain.strip().lower(), key))
            if (
                domain_record is not None
                and domain_record.observations >= self.policy.learning.domain_min_samples
            ):
                return domain_record if self._eligible(domain_record) else None

        return global_record if self._eligible(global_record) else None

    def record_for(self, signature: Signature, domain: str | None = None) -> PatternRecord | None:
        """Derived record without eligibility gating."""
        if domain:
            return self._domain.get((domain.strip().lower(), signature.key))
        return self._global.get(signature.key)

    def records(self) -> list[PatternRecord]:
        return list(self._global.values())

    def domain_records(self) -> list[PatternRecord]:
        return list(self._domain.values())

    def ledger(self) -> list[FeedbackEntry]:
        return list(self._ledger)

    def element_type_stats(self, element: str) -> ElementStats:
        element = element.strip().lower()
        successes = failures = 0
        for record in self._global.values():
            if record.signature.element == element:
                successes += record.success_count
                failures += record.failure_count
        return ElementStats(element=element, success_count=successes, failure_count=failures)

    def domain_sample_count(self, domain: str | None) -> int:
        """Rated (up/down) observations recorded for domain."""
        if not domain:
            return 0
        domain = domain.strip().lower()
        return sum(
            1
            for e in self._ledger
            if e.domain == domain and e.rating is not FeedbackRating.NEUTRAL
        )

    def domains(self) -> set[str]:
        return {e.domain for e in self._ledger if e.domain}

    # --- import / export ---

    def export_document(self) -> StoreDocument:
        return StoreDocument(
            ledger=list(self._ledger),
            records=self.records() + self.domain_records(),
        )

    def import_document(self, document: StoreDocument | dict[str, Any], merge: bool = False) -> int:
        """
        Replace (or extend, with merge=True) the ledger from an exported document.

        Records in the document are ignored; they are rebuilt from its ledger.

        Returns:
            Number of ledger entries now held

        Raises:
            ValueError: If the document does not validate
            PersistenceError: If the imported ledger cannot be written
        """
        if not isinstance(document, StoreDocument):
            try:
                document = StoreDocument.model_validate(document)
            except ValidationError as e:
                raise ValueError(f"Invalid store document: {e}") from e

        if merge:
            if not self._loaded:
                self.load()
            known = {_entry_identity(e) for e in self._ledger}
            self._ledger.extend(e for e in document.ledger if _entry_identity(e) not in known)
        else:
            self._ledger = list(document.ledger)
            # A replace overwrites the stored document instead of merging into it
            self._loaded = True

        self._rebuild()
        counter("pattern_store.imports")
        logger.info("Imported %d ledger entries (merge=%s)", len(document.ledger), merge)
        self._flush()
        if not merge:
            self.available = True
            self.last_error = None
        return len(self._ledger)
