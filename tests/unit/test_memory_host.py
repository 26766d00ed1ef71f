from __future__ import annotations

import json

import pytest

from darkpatch.errors import ClassificationError
from darkpatch.host.memory import DocumentTree, Element
from darkpatch.host.tree import HostTree


def test_satisfies_host_protocol(dropdown_tree):
    assert isinstance(dropdown_tree(), HostTree)


def test_identity_and_resolve(dropdown_tree):
    tree = dropdown_tree()
    menu = tree.root().children[0].children[0]
    second_span = menu.children[1]

    assert tree.identity(menu) == "html/body[1]/div[1]"
    assert tree.identity(second_span) == "html/body[1]/div[1]/span[2]"
    assert tree.identity(tree.resolve('id("intro")')) == 'id("intro")'
    assert tree.resolve(tree.identity(second_span)) is second_span
    assert tree.resolve('id("missing")') is None


def test_computed_style_inherits_color(dropdown_tree):
    tree = dropdown_tree(color="rgb(200, 200, 200)")
    menu = tree.root().children[0].children[0]

    child_style = tree.computed_style(menu.children[0])

    assert child_style["color"] == "rgb(200, 200, 200)"
    # Backgrounds do not inherit
    assert child_style["background-color"] == "rgba(0, 0, 0, 0)"
    assert child_style["position"] == "static"


def test_missing_style_value_raises():
    node = Element("div", style={"color": None})
    tree = DocumentTree(Element("html", children=[node]))

    with pytest.raises(ClassificationError) as exc_info:
        tree.computed_style(node)
    assert exc_info.value.node_identity == "html/div[1]"


def test_text_content_includes_descendants(dropdown_tree):
    tree = dropdown_tree()
    menu = tree.root().children[0].children[0]
    assert tree.text_content(menu) == "SettingsSign out"


def test_from_json_string_and_file(tmp_path):
    text = json.dumps(
        {
            "viewport": {"width": 1280, "height": 720},
            "root": {"tag": "html", "children": [{"tag": "p", "id": "intro", "text": "Welcome back"}]},
        }
    )
    path = tmp_path / "page.json"
    path.write_text(text)

    from_text = DocumentTree.from_json(text)
    from_file = DocumentTree.from_json(path)

    assert from_text.viewport() == from_file.viewport() == (1280.0, 720.0)
    assert from_file.resolve('id("intro")').text == "Welcome back"


def test_element_requires_tag():
    with pytest.raises(ValueError):
        DocumentTree.from_dict({"root": {"children": []}})


def test_mutations_notify_listeners(dropdown_tree):
    tree = dropdown_tree()
    seen = []
    unsubscribe = tree.subscribe(seen.append)
    intro = tree.resolve('id("intro")')

    tree.set_style(intro, "color", "red")
    tree.append_child(intro, Element("span"))
    tree.set_marker(intro, True)
    unsubscribe()
    tree.set_attribute(intro, "title", "x")

    assert seen == [intro, intro]


def test_failing_listener_does_not_block_others(dropdown_tree):
    tree = dropdown_tree()
    seen = []

    def broken(node):
        raise RuntimeError("listener bug")

    tree.subscribe(broken)
    tree.subscribe(seen.append)
    tree.notify(None)

    assert seen == [None]
