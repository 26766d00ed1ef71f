"""
Deterministic detection rules

Each rule is a pure predicate over a StyleSnapshot plus the thresholds it needs
from the policy. The HeuristicClassifier runs all of them; the
LearnedClassifier swaps the menu rule for a model and keeps the rest.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from darkpatch.contracts.types import StyleSnapshot
from darkpatch.runtime.policy import ClassificationPolicy
from darkpatch.scanning.colors import contrast_ratio, perceived_brightness

MENU_HINTS = frozenset(
    {
        "menu",
        "nav",
        "navbar",
        "navigation",
        "dropdown",
        "drawer",
        "sidebar",
        "dialog",
        "modal",
        "popover",
        "popup",
        "submenu",
        "menubar",
    }
)
MENU_ROLES = frozenset({"menu", "navigation", "dialog", "menubar", "listbox"})
EXCLUDED_HINTS = frozenset({"backdrop", "overlay", "main"})
EXCLUDED_ROLES = frozenset({"main"})
OVERLAY_POSITIONS = frozenset({"fixed", "absolute"})

_TOKEN_SPLIT = re.compile(r"[-_]+")
_HEADING_TAG = re.compile(r"^h[1-6]$")


def class_tokens(classes: Iterable[str]) -> set[str]:
    """Lower-case class names plus their dash/underscore-separated parts."""
    tokens: set[str] = set()
    for cls in classes:
        lowered = cls.lower()
        tokens.add(lowered)
        tokens.update(part for part in _TOKEN_SPLIT.split(lowered) if part)
    return tokens


def detect_element_kind(tag: str, classes: Iterable[str]) -> str:
    """
    Coarse element purpose used as the signature's element type.

    Checked in order: button, navigation, header, form, link, content, sidebar,
    container, falling back to generic.
    """
    tag = tag.lower()
    joined = " ".join(classes).lower()

    if tag == "button" or "btn" in joined or "button" in joined:
        return "button"
    if tag == "nav" or "nav" in joined or "menu" in joined:
        return "navigation"
    if _HEADING_TAG.match(tag) or "header" in joined or "title" in joined:
        return "header"
    if tag in ("input", "textarea", "select", "form"):
        return "form"
    if tag == "a":
        return "link"
    if tag == "article" or "content" in joined or "article" in joined:
        return "content"
    if tag == "aside" or "sidebar" in joined or "aside" in joined:
        return "sidebar"
    if "card" in joined or "container" in joined or "box" in joined:
        return "container"
    return "generic"


def class_names(classes: Iterable[str]) -> set[str]:
    return {cls.lower() for cls in classes}


def suggests_menu(snapshot: StyleSnapshot) -> bool:
    """Role/class says menu, navigation or dialog, and nothing says backdrop or main content."""
    tokens = class_tokens(snapshot.classes)
    role = snapshot.role.lower()

    # Exclusions match whole class names; "main-nav" is still navigation
    if role in EXCLUDED_ROLES or class_names(snapshot.classes) & EXCLUDED_HINTS:
        return False
    return role in MENU_ROLES or snapshot.aria_modal or bool(tokens & MENU_HINTS)


def menu_geometry_matches(snapshot: StyleSnapshot, policy: ClassificationPolicy) -> bool:
    """Overlay positioning, stacking order, transparent background and box size."""
    if snapshot.position not in OVERLAY_POSITIONS:
        return False
    if snapshot.z_index is None or snapshot.z_index <= policy.menu_min_z_index:
        return False
    if not snapshot.background.is_transparent:
        return False

    viewport_w, viewport_h = snapshot.viewport
    box = snapshot.box
    max_w = viewport_w * policy.menu_max_viewport_fraction
    max_h = viewport_h * policy.menu_max_viewport_fraction
    return (
        policy.menu_min_box_px <= box.width <= max_w
        and policy.menu_min_box_px <= box.height <= max_h
    )


def is_transparent_menu(snapshot: StyleSnapshot, policy: ClassificationPolicy) -> bool:
    return menu_geometry_matches(snapshot, policy) and suggests_menu(snapshot)


def has_poor_contrast(snapshot: StyleSnapshot, policy: ClassificationPolicy) -> bool:
    # Only meaningful when both colours are fully opaque
    if not (snapshot.foreground.is_opaque and snapshot.background.is_opaque):
        return False
    return contrast_ratio(snapshot.foreground, snapshot.background) < policy.min_contrast_ratio


def has_white_background(snapshot: StyleSnapshot, policy: ClassificationPolicy) -> bool:
    bg = snapshot.background
    if not bg.is_opaque:
        return False
    threshold = policy.white_channel_min
    return bg.r > threshold and bg.g > threshold and bg.b > threshold


def has_hidden_content(snapshot: StyleSnapshot, policy: ClassificationPolicy) -> bool:
    return snapshot.visibility == "hidden" and bool(snapshot.text.strip())


def has_low_opacity(snapshot: StyleSnapshot, policy: ClassificationPolicy) -> bool:
    return snapshot.opacity < policy.low_opacity_max


def has_light_border(snapshot: StyleSnapshot, policy: ClassificationPolicy) -> bool:
    if snapshot.border_style in ("none", "hidden") or snapshot.border_width <= 0:
        return False
    color = snapshot.border_color
    if not color.is_opaque:
        return False
    return perceived_brightness(color) > policy.light_brightness_min


def menu_features(snapshot: StyleSnapshot) -> dict[str, float]:
    """Numeric features handed to a learned menu model."""
    viewport_w, viewport_h = snapshot.viewport
    tokens = class_tokens(snapshot.classes)
    return {
        "is_overlay_position": float(snapshot.position in OVERLAY_POSITIONS),
        "z_index": float(snapshot.z_index or 0),
        "background_alpha": snapshot.background.alpha,
        "width_fraction": snapshot.box.width / viewport_w if viewport_w else 0.0,
        "height_fraction": snapshot.box.height / viewport_h if viewport_h else 0.0,
        "width_px": snapshot.box.width,
        "height_px": snapshot.box.height,
        "menu_role": float(snapshot.role.lower() in MENU_ROLES),
        "aria_modal": float(snapshot.aria_modal),
        "menu_class_hits": float(len(tokens & MENU_HINTS)),
        "excluded_class_hits": float(len(class_names(snapshot.classes) & EXCLUDED_HINTS)),
        "text_length": float(len(snapshot.text)),
    }
