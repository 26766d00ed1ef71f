"""
Conformance checks for generated style payloads.

A payload must be plain CSS rule text that is safe to drop into a style block.
Anything else is rejected as GenerationFailure(status="non_conforming").
"""

from __future__ import annotations

import re

from darkpatch.contracts.models import ProblemTag
from darkpatch.errors import GenerationFailure

_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_STRING_RE = re.compile(r"\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*'")
_TRANSPARENT_BG_RE = re.compile(
    r"background(?:-color)?\s*:\s*(?:transparent|rgba\(\s*\d+\s*,\s*\d+\s*,\s*\d+\s*,\s*0(?:\.0*)?\s*\))",
    re.IGNORECASE,
)


def _strip_noise(css: str) -> str:
    """Drop comments and quoted strings so braces inside them are not counted."""
    return _STRING_RE.sub('""', _COMMENT_RE.sub("", css))


def braces_balanced(css: str) -> bool:
    depth = 0
    for ch in _strip_noise(css):
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def check_patch_text(css: str, tags: frozenset[ProblemTag] | set[ProblemTag] = frozenset()) -> str:
    """
    Validate generated CSS and return it stripped.

    Raises:
        GenerationFailure: status="non_conforming" with the reason
    """
    text = (css or "").strip()
    if not text:
        raise GenerationFailure("Empty patch text", status="non_conforming")

    lowered = text.lower()
    if "<" in text or "</style" in lowered:
        raise GenerationFailure("Patch text contains markup", status="non_conforming")
    if "@import" in lowered:
        raise GenerationFailure("Patch text contains @import", status="non_conforming")
    if "javascript:" in lowered or "expression(" in lowered:
        raise GenerationFailure("Patch text contains script", status="non_conforming")
    if "{" not in text or not braces_balanced(text):
        raise GenerationFailure("Patch text has unbalanced braces", status="non_conforming")
    if ProblemTag.TRANSPARENT_MENU_BACKGROUND in tags and _TRANSPARENT_BG_RE.search(text):
        raise GenerationFailure(
            "Patch keeps a transparent background on a menu", status="non_conforming"
        )
    return text
