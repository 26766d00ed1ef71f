"""
Signature derivation and rule-text generalization.

A signature is (sorted tag set, element kind, sorted class set). Rule text is
stored generalized: the concrete selector it was written for is replaced by
SELECTOR_TOKEN so a learned rule can be re-targeted at another node with the
same signature.
"""

from __future__ import annotations

from collections.abc import Iterable

from darkpatch.contracts.models import ProblemTag, Signature
from darkpatch.contracts.types import StyleSnapshot

SELECTOR_TOKEN = "{{selector}}"


def signature_for(snapshot: StyleSnapshot, tags: Iterable[ProblemTag]) -> Signature:
    return Signature(tags=tuple(tags), element=snapshot.element_kind, classes=snapshot.classes)


def generalize_rule(rule_text: str, selector: str) -> str:
    """Replace the concrete selector with SELECTOR_TOKEN (no-op when absent)."""
    if not selector:
        return rule_text
    return rule_text.replace(selector, SELECTOR_TOKEN)


def instantiate_rule(rule_text: str, selector: str) -> str:
    return rule_text.replace(SELECTOR_TOKEN, selector)


def is_generalized(rule_text: str) -> bool:
    return SELECTOR_TOKEN in rule_text
