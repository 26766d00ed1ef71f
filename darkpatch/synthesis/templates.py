"""
Fixed template table

Last-resort patches keyed by element kind. Every template is written against
SELECTOR_TOKEN and instantiated for the concrete node. `prior` is the baseline
confidence the template starts from before element/domain feedback bonuses.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from darkpatch.contracts.models import ProblemTag
from darkpatch.learning.signature import SELECTOR_TOKEN, instantiate_rule

S = SELECTOR_TOKEN


@dataclass(frozen=True)
class Template:
    name: str
    rule_text: str
    prior: float


MENU_TEMPLATE = Template(
    name="menu",
    rule_text=(
        f"{S} {{ background-color: #222 !important; color: #e4e6ea !important; "
        f"border: 1px solid #444 !important; }}\n"
        f"{S} a, {S} span, {S} div {{ color: #e4e6ea !important; }}\n"
        f"{S}:hover {{ background-color: #333 !important; }}"
    ),
    prior=0.6,
)

TEMPLATES: dict[str, Template] = {
    "navigation": Template(
        "navigation",
        f"{S} {{ background-color: #1a1a1a !important; color: #ffffff !important; }}",
        0.5,
    ),
    "button": Template(
        "button",
        f"{S} {{ background-color: #333 !important; color: #e0e0e0 !important; "
        f"border: 1px solid #555 !important; }}",
        0.4,
    ),
    "form": Template(
        "form",
        f"{S} {{ background-color: #2a2a2a !important; color: #e0e0e0 !important; "
        f"border: 1px solid #555 !important; }}",
        0.4,
    ),
    "sidebar": Template(
        "sidebar",
        f"{S} {{ background-color: #1e1e1e !important; color: #e0e0e0 !important; }}",
        0.4,
    ),
    "container": Template(
        "container",
        f"{S} {{ background-color: #242424 !important; color: #e0e0e0 !important; "
        f"border-color: #444 !important; }}",
        0.35,
    ),
    "content": Template(
        "content",
        f"{S} {{ background-color: #121212 !important; color: #e0e0e0 !important; }}",
        0.3,
    ),
    "header": Template(
        "header",
        f"{S} {{ color: #f0f0f0 !important; }}",
        0.3,
    ),
    "link": Template(
        "link",
        f"{S} {{ color: #58a6ff !important; }}",
        0.3,
    ),
    "generic": Template(
        "generic",
        f"{S} {{ background-color: #1e1e1e !important; color: #e0e0e0 !important; }}",
        0.2,
    ),
}

# Extra declarations appended for specific problems, independent of element kind
PROBLEM_ADDENDA: dict[ProblemTag, str] = {
    ProblemTag.LOW_OPACITY: f"{S} {{ opacity: 1 !important; }}",
    ProblemTag.LIGHT_BORDER: f"{S} {{ border-color: #444 !important; }}",
    ProblemTag.POOR_CONTRAST: f"{S} {{ color: #e0e0e0 !important; }}",
}


def template_for(element_kind: str, tags: Iterable[ProblemTag]) -> Template:
    tags = set(tags)
    if ProblemTag.TRANSPARENT_MENU_BACKGROUND in tags:
        base = MENU_TEMPLATE
    else:
        base = TEMPLATES.get(element_kind, TEMPLATES["generic"])

    addenda = [PROBLEM_ADDENDA[tag] for tag in sorted(tags, key=lambda t: t.value) if tag in PROBLEM_ADDENDA]
    if not addenda:
        return base
    return Template(base.name, "\n".join([base.rule_text, *addenda]), base.prior)


def render_template(template: Template, selector: str) -> str:
    return instantiate_rule(template.rule_text, selector)
