"""
Defect classification strategies.

    StyleSnapshot → frozenset[ProblemTag]

Two interchangeable strategies share one interface:
    HeuristicClassifier - deterministic rules for every tag
    LearnedClassifier   - a pluggable model decides the menu tag, rules do the rest

The strategy is picked once, at construction, via build_classifier(). There is
no runtime probing for a model; if you want the learned path you pass a model.

Pure classification - no side effects, no host access.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Protocol, runtime_checkable

from darkpatch.classification.rules import (
    has_hidden_content,
    has_light_border,
    has_low_opacity,
    has_poor_contrast,
    has_white_background,
    is_transparent_menu,
    menu_features,
)
from darkpatch.contracts.models import ProblemTag
from darkpatch.contracts.types import StyleSnapshot
from darkpatch.runtime.policy import ClassificationPolicy, get_policy

Rule = Callable[[StyleSnapshot, ClassificationPolicy], bool]

# Every tag except the menu tag, which each strategy decides its own way
SHARED_RULES: tuple[tuple[ProblemTag, Rule], ...] = (
    (ProblemTag.POOR_CONTRAST, has_poor_contrast),
    (ProblemTag.WHITE_BACKGROUND, has_white_background),
    (ProblemTag.HIDDEN_CONTENT, has_hidden_content),
    (ProblemTag.LOW_OPACITY, has_low_opacity),
    (ProblemTag.LIGHT_BORDER, has_light_border),
)


@runtime_checkable
class MenuModel(Protocol):
    """Anything that scores menu-likeness from numeric features."""

    def predict(self, features: Mapping[str, float]) -> float:
        """Probability in [0, 1] that the node is a transparent overlay menu."""
        ...


class DefectClassifier:
    """Base strategy. Subclasses decide the menu tag."""

    kind = "base"

    def __init__(self, policy: ClassificationPolicy | None = None):
        self.policy = policy or get_policy().classification

    def classify(self, snapshot: StyleSnapshot) -> frozenset[ProblemTag]:
        tags = {tag for tag, rule in SHARED_RULES if rule(snapshot, self.policy)}
        if self.is_menu_issue(snapshot):
            tags.add(ProblemTag.TRANSPARENT_MENU_BACKGROUND)
        return frozenset(tags)

    def is_menu_issue(self, snapshot: StyleSnapshot) -> bool:
        raise NotImplementedError


class HeuristicClassifier(DefectClassifier):
    kind = "heuristic"

    def is_menu_issue(self, snapshot: StyleSnapshot) -> bool:
        return is_transparent_menu(snapshot, self.policy)


class LearnedClassifier(DefectClassifier):
    """
    Menu decision delegated to a model.

    The background must still be fully transparent: the model decides whether a
    transparent overlay is a menu, not whether it is transparent.
    """

    kind = "learned"

    def __init__(self, model: MenuModel, policy: ClassificationPolicy | None = None):
        super().__init__(policy)
        self.model = model

    def is_menu_issue(self, snapshot: StyleSnapshot) -> bool:
        if not snapshot.background.is_transparent:
            return False
        probability = self.model.predict(menu_features(snapshot))
        return probability >= self.policy.learned_menu_probability


def build_classifier(
    kind: str = "heuristic",
    model: MenuModel | None = None,
    policy: ClassificationPolicy | None = None,
) -> DefectClassifier:
    """
    Construct a classifier strategy.

    Raises:
        ValueError: Unknown kind, or kind="learned" without a model
    """
    if kind == "heuristic":
        return HeuristicClassifier(policy)
    if kind == "learned":
        if model is None:
            raise ValueError("LearnedClassifier requires a model")
        return LearnedClassifier(model, policy)
    raise ValueError(f"Unknown classifier kind: {kind!r}")
