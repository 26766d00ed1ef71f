"""
Centralized threshold policy

All classification, synthesis and learning cut-offs come from
config/darkpatch_policy.yaml. The values are empirically chosen and treated as
configurable policy; the pydantic defaults below apply when the file (or a
key in it) is missing.

Usage:
    from darkpatch.runtime.policy import get_policy

    policy = get_policy()
    if confidence >= policy.synthesis.learned_min_confidence:
        ...
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field

from darkpatch.observability.logging import get_logger

logger = get_logger(__name__)


class ClassificationPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    menu_min_z_index: int = 100
    menu_min_box_px: float = 40.0
    menu_max_viewport_fraction: float = 0.9
    min_contrast_ratio: float = 3.0
    white_channel_min: int = 240
    low_opacity_max: float = 0.5
    light_brightness_min: float = 128.0
    learned_menu_probability: float = 0.5


class SynthesisPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    learned_min_confidence: float = 0.6
    learned_min_observations: int = 3
    template_min_confidence: float = 0.3
    element_effectiveness_bonus_min: float = 0.7
    element_effectiveness_bonus: float = 0.3
    domain_bonus: float = 0.2
    degraded_confidence: float = 0.3
    generated_confidence: float = 0.5
    max_generations_per_cycle: int = 10


class LearningPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    domain_min_samples: int = 2
    report_min_confidence: float = 0.5


class VerificationPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    working_well_max_issues: int = 3


class Policy(BaseModel):
    """Every tunable threshold, grouped by the component that reads it."""

    model_config = ConfigDict(frozen=True)

    classification: ClassificationPolicy = Field(default_factory=ClassificationPolicy)
    synthesis: SynthesisPolicy = Field(default_factory=SynthesisPolicy)
    learning: LearningPolicy = Field(default_factory=LearningPolicy)
    verification: VerificationPolicy = Field(default_factory=VerificationPolicy)

    def validate_ranges(self) -> bool:
        """
        Validate that thresholds are consistent and within valid ranges

        Raises:
            ValueError: If thresholds are inconsistent
        """
        errors = []

        probabilities = {
            "synthesis.learned_min_confidence": self.synthesis.learned_min_confidence,
            "synthesis.template_min_confidence": self.synthesis.template_min_confidence,
            "synthesis.element_effectiveness_bonus_min": self.synthesis.element_effectiveness_bonus_min,
            "synthesis.element_effectiveness_bonus": self.synthesis.element_effectiveness_bonus,
            "synthesis.domain_bonus": self.synthesis.domain_bonus,
            "synthesis.degraded_confidence": self.synthesis.degraded_confidence,
            "synthesis.generated_confidence": self.synthesis.generated_confidence,
            "learning.report_min_confidence": self.learning.report_min_confidence,
            "classification.learned_menu_probability": self.classification.learned_menu_probability,
            "classification.low_opacity_max": self.classification.low_opacity_max,
        }
        for name, value in probabilities.items():
            if not 0.0 <= value <= 1.0:
                errors.append(f"{name} ({value}) is outside valid range [0.0, 1.0]")

        if not 0.0 < self.classification.menu_max_viewport_fraction <= 1.0:
            errors.append("classification.menu_max_viewport_fraction must be in (0, 1]")
        if not 0 <= self.classification.white_channel_min <= 255:
            errors.append("classification.white_channel_min must be in [0, 255]")
        if not 0.0 <= self.classification.light_brightness_min <= 255.0:
            errors.append("classification.light_brightness_min must be in [0, 255]")
        if self.classification.min_contrast_ratio < 1.0:
            errors.append("classification.min_contrast_ratio must be >= 1.0")
        if self.synthesis.learned_min_observations < 1:
            errors.append("synthesis.learned_min_observations must be >= 1")
        if self.learning.domain_min_samples < 1:
            errors.append("learning.domain_min_samples must be >= 1")
        if self.synthesis.template_min_confidence > self.synthesis.learned_min_confidence:
            errors.append(
                f"synthesis.template_min_confidence ({self.synthesis.template_min_confidence}) "
                f"must be <= learned_min_confidence ({self.synthesis.learned_min_confidence})"
            )

        if errors:
            raise ValueError("Policy validation failed:\n" + "\n".join(errors))

        return True

    def as_dict(self) -> dict[str, Any]:
        """All thresholds as a plain dictionary (for API exposure)."""
        return self.model_dump()


def _candidate_paths() -> list[Path]:
    paths = []
    if env_path := os.getenv("DARKPATCH_POLICY_PATH"):
        paths.append(Path(env_path))
    paths.extend(
        [
            Path(__file__).parent.parent.parent / "config" / "darkpatch_policy.yaml",
            Path("config/darkpatch_policy.yaml"),
        ]
    )
    return paths


def load_policy(path: Path | str | None = None) -> Policy:
    """
    Load policy thresholds from YAML.

    Args:
        path: Explicit policy file. When omitted, DARKPATCH_POLICY_PATH and the
            repository config/ directory are searched.

    Side Effects:
        - Reads the policy YAML file from the filesystem

    Raises:
        ValueError: If the loaded thresholds fail validation
    """
    candidates = [Path(path)] if path is not None else _candidate_paths()

    for config_path in candidates:
        if config_path.exists():
            with open(config_path) as f:
                raw = yaml.safe_load(f) or {}
            policy = Policy.model_validate(raw)
            policy.validate_ranges()
            logger.debug("Loaded policy from %s", config_path)
            return policy

    if path is not None:
        raise FileNotFoundError(f"Policy file not found: {path}")

    logger.warning("darkpatch_policy.yaml not found, using hardcoded defaults")
    return Policy()


@lru_cache(maxsize=1)
def get_policy() -> Policy:
    """Process-wide policy, loaded once."""
    return load_policy()
