from __future__ import annotations

from darkpatch.contracts.models import ProblemTag
from darkpatch.learning.signature import (
    SELECTOR_TOKEN,
    generalize_rule,
    instantiate_rule,
    is_generalized,
    signature_for,
)


def test_signature_for_uses_element_kind_and_classes(make_snapshot):
    snapshot = make_snapshot(element_kind="navigation", classes=("menu", "dropdown"))
    signature = signature_for(snapshot, [ProblemTag.TRANSPARENT_MENU_BACKGROUND])
    assert signature.key == "transparent_menu_background|navigation|dropdown menu"


def test_generalize_then_instantiate_retargets_rule():
    rule = "ul.menu { background: #222; }\nul.menu a { color: #eee; }"

    generalized = generalize_rule(rule, "ul.menu")

    assert generalized.count(SELECTOR_TOKEN) == 2
    assert is_generalized(generalized)
    assert instantiate_rule(generalized, "div#nav") == (
        "div#nav { background: #222; }\ndiv#nav a { color: #eee; }"
    )


def test_generalize_without_selector_is_noop():
    assert generalize_rule("a { color: red; }", "") == "a { color: red; }"
    assert not is_generalized("a { color: red; }")
