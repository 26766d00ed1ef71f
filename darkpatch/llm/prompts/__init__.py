"""
Prompt Management Module

Loads LLM prompts from the .txt files next to this module so wording can be
tuned without touching code. User-controlled fields are sanitized before they
are injected.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any

from darkpatch.config import PROMPT_DESCRIPTION_MAX_CHARS, PROMPT_TEXT_SAMPLE_CHARS
from darkpatch.contracts.models import GenerationRequest

PROMPTS_DIR = Path(__file__).parent

# Set DARKPATCH_ELEMENT_PROMPT to try an alternate prompt file
ELEMENT_PROMPT_NAME = os.getenv("DARKPATCH_ELEMENT_PROMPT", "element_fix_prompt")


def sanitize(text: str, max_length: int = 500) -> str:
    """Strip prompt-injection phrasing and truncate."""
    if not text:
        return ""

    text = re.sub(r"(?i)(ignore|disregard).*(instruction|prompt)", "[REDACTED]", text)
    text = re.sub(r"(?i)system\s*:", "", text)
    text = re.sub(r"(?i)assistant\s*:", "", text)
    return text[:max_length]


class PromptLoader:
    """Load and cache prompt templates from files"""

    def __init__(self):
        self._cache: dict[str, str] = {}

    def load_prompt(self, prompt_name: str) -> str:
        """
        Raises:
            FileNotFoundError: If no <prompt_name>.txt exists
        """
        if prompt_name not in self._cache:
            prompt_path = PROMPTS_DIR / f"{prompt_name}.txt"

            if not prompt_path.exists():
                raise FileNotFoundError(f"Prompt file not found: {prompt_path}")

            with open(prompt_path, encoding="utf-8") as f:
                self._cache[prompt_name] = f.read()

        return self._cache[prompt_name]

    def get_element_prompt(self, request: GenerationRequest) -> str:
        template = self.load_prompt(ELEMENT_PROMPT_NAME)
        parent = request.structural_context
        parent_text = (
            f"{parent.tag} (classes: {', '.join(parent.classes) or 'none'}, "
            f"background: {parent.background or 'unknown'})"
            if parent
            else "none"
        )
        style_sample = json.dumps(request.style_sample, indent=2, sort_keys=True)
        return template.format(
            tag=request.tag,
            classes=", ".join(request.classes) or "none",
            identity_path=request.identity_path,
            selector=request.selector,
            element_kind=request.element_kind,
            problems=", ".join(p.value for p in request.problems) or "unspecified",
            parent=sanitize(parent_text, 300),
            style_sample=style_sample,
            text_sample=sanitize(request.text_sample, PROMPT_TEXT_SAMPLE_CHARS),
            description=sanitize(request.description, PROMPT_DESCRIPTION_MAX_CHARS),
        )

    def get_conversation_prompt(self, **kwargs: Any) -> str:
        """
        Args:
            description: What the user asked for
            page_summary: Short description of the page (title, dominant colours)
        """
        template = self.load_prompt("conversation_prompt")
        return template.format(
            description=sanitize(kwargs.get("description", ""), PROMPT_DESCRIPTION_MAX_CHARS),
            page_summary=sanitize(kwargs.get("page_summary", ""), PROMPT_DESCRIPTION_MAX_CHARS),
        )

    def reload(self) -> None:
        """Clear cache and reload prompts from disk"""
        self._cache.clear()


# Global instance
_loader = PromptLoader()


def get_element_prompt(request: GenerationRequest) -> str:
    return _loader.get_element_prompt(request)


def get_conversation_prompt(**kwargs: Any) -> str:
    return _loader.get_conversation_prompt(**kwargs)


def reload_prompts() -> None:
    _loader.reload()
