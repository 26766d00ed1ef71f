from __future__ import annotations

from darkpatch.contracts.types import BoundingBox, Color
from darkpatch.host.memory import DocumentTree, Element
from darkpatch.scanning.scanner import TreeScanner


def _tree(*children: Element) -> DocumentTree:
    body = Element("body", children=list(children))
    return DocumentTree(Element("html", children=[body]))


def _box(width=100, height=50) -> BoundingBox:
    return BoundingBox(0, 0, width, height)


def test_snapshot_reads_computed_style():
    node = Element(
        "div",
        attributes={"id": "panel", "class": "card wide", "role": "dialog", "aria-modal": "true"},
        style={
            "background-color": "#ffffff",
            "color": "rgb(20, 20, 20)",
            "border-width": "2px",
            "border-style": "solid",
            "border-color": "currentcolor",
            "position": "fixed",
            "z-index": "1000",
        },
        box=_box(),
        text="  Hello \n  world  ",
    )
    tree = _tree(node)

    snapshot = TreeScanner(tree).snapshot(node)

    assert snapshot.identity == 'id("panel")'
    assert snapshot.classes == ("card", "wide")
    assert snapshot.aria_modal is True
    assert snapshot.element_kind == "container"
    assert snapshot.background == Color(255, 255, 255)
    assert snapshot.border_color == Color(20, 20, 20)
    assert snapshot.border_width == 2.0
    assert snapshot.z_index == 1000
    assert snapshot.text == "Hello world"
    assert snapshot.parent is not None and snapshot.parent.tag == "body"
    assert snapshot.raw_styles["position"] == "fixed"
    assert snapshot.handle() is node


def test_color_inherits_from_ancestors():
    child = Element("span", box=_box())
    parent = Element("div", style={"color": "white"}, box=_box(), children=[child])
    tree = _tree(parent)

    assert TreeScanner(tree).snapshot(child).foreground == Color(255, 255, 255)


def test_text_sample_is_truncated():
    node = Element("p", box=_box(), text="x" * 500)
    tree = _tree(node)
    assert len(TreeScanner(tree).snapshot(node).text) == 200


def test_malformed_node_is_skipped_and_walk_continues():
    good = Element("div", attributes={"id": "good"}, box=_box())
    bad = Element("div", attributes={"id": "bad"}, style={"color": "banana"}, box=_box())
    tree = _tree(bad, good)

    result = TreeScanner(tree).scan()

    identities = [s.identity for s in result.snapshots]
    assert 'id("good")' in identities
    assert 'id("bad")' not in identities
    assert len(result.errors) == 1
    assert result.errors[0].node_identity == 'id("bad")'


def test_empty_boxes_are_skipped():
    hidden = Element("div", attributes={"id": "collapsed"}, box=_box(0, 0))
    tree = _tree(hidden)

    result = TreeScanner(tree).scan()

    assert all(s.identity != 'id("collapsed")' for s in result.snapshots)
    # html, body and the collapsed div all have empty boxes
    assert result.skipped_empty == 3


def test_marked_nodes_skipped_unless_forced():
    node = Element("div", attributes={"id": "patched"}, box=_box())
    tree = _tree(node)
    tree.set_marker(node, True)
    scanner = TreeScanner(tree)

    assert scanner.scan().skipped_marked == 1
    assert [s.identity for s in scanner.scan(force=True).snapshots] == ['id("patched")']


def test_scan_does_not_write_to_host():
    node = Element("div", box=_box(), style={"background-color": "white"})
    tree = _tree(node)

    TreeScanner(tree).scan()

    assert tree.style_blocks() == {}
    assert tree.marked_nodes() == []
    assert not tree.mode_marker()


def test_scan_of_subtree_only_visits_that_subtree():
    inner = Element("span", box=_box())
    target = Element("div", attributes={"id": "target"}, box=_box(), children=[inner])
    other = Element("div", attributes={"id": "other"}, box=_box())
    tree = _tree(target, other)

    result = TreeScanner(tree).scan(target)

    assert result.visited == 2
    assert {s.identity for s in result.snapshots} == {'id("target")', 'id("target")/span[1]'}
