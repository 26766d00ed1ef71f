"""Learning report: summary statistics over the feedback ledger."""

from __future__ import annotations

from collections import Counter

from pydantic import BaseModel, Field

from darkpatch.contracts.models import FeedbackRating
from darkpatch.learning.pattern_store import PatternStore

MOST_COMMON_PROBLEMS_LIMIT = 5
TOP_FIXES_LIMIT = 10


class ProblemCount(BaseModel):
    problem: str
    count: int


class SuccessfulFix(BaseModel):
    signature: str
    confidence: float
    observations: int
    rule_text: str | None = None


class LearningReport(BaseModel):
    total_feedback: int = 0
    most_common_problems: list[ProblemCount] = Field(default_factory=list)
    top_successful_fixes: list[SuccessfulFix] = Field(default_factory=list)
    domain_specialization: int = 0
    overall_success_rate: float = 0.0
    learning_confidence: float = 0.0
    store_available: bool = True


def build_learning_report(store: PatternStore) -> LearningReport:
    ledger = store.ledger()

    problems: Counter[str] = Counter()
    for entry in ledger:
        for tag in entry.signature.tags:
            problems[tag.value] += 1

    records = store.records()
    min_confidence = store.policy.learning.report_min_confidence
    top = sorted(
        (r for r in records if r.confidence >= min_confidence),
        key=lambda r: (r.confidence, r.observations),
        reverse=True,
    )[:TOP_FIXES_LIMIT]

    rated = [e for e in ledger if e.rating is not FeedbackRating.NEUTRAL]
    successes = sum(1 for e in rated if e.rating is FeedbackRating.UP)

    return LearningReport(
        total_feedback=len(ledger),
        most_common_problems=[
            ProblemCount(problem=problem, count=count)
            for problem, count in problems.most_common(MOST_COMMON_PROBLEMS_LIMIT)
        ],
        top_successful_fixes=[
            SuccessfulFix(
                signature=r.signature.key,
                confidence=r.confidence,
                observations=r.observations,
                rule_text=r.rule_text,
            )
            for r in top
        ],
        domain_specialization=len(store.domains()),
        overall_success_rate=successes / len(rated) if rated else 0.0,
        learning_confidence=(
            sum(r.confidence for r in records) / len(records) if records else 0.0
        ),
        store_available=store.available,
    )
