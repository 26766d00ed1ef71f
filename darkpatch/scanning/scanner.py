"""
Tree Scanner

Walks a subtree of the host document and materializes a StyleSnapshot for every
node with a non-zero rendered box. Pure read: the host is never written to, so
scan() is safe to call repeatedly and from any monitor trigger.

Nodes carrying the active-patch marker are skipped unless force=True (used by
verification, which needs to see patched nodes again).
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field

from darkpatch.classification.rules import detect_element_kind
from darkpatch.config import PROMPT_TEXT_SAMPLE_CHARS
from darkpatch.contracts.types import TRANSPARENT, ParentSnapshot, StyleSnapshot
from darkpatch.errors import ClassificationError
from darkpatch.host.tree import HostTree, Node
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter, time_block
from darkpatch.scanning.colors import (
    parse_color,
    parse_length,
    parse_opacity,
    parse_z_index,
)

logger = get_logger(__name__)

# Computed properties forwarded to remote generation as the style sample
SAMPLED_PROPERTIES = (
    "background-color",
    "color",
    "border-color",
    "border-style",
    "border-width",
    "opacity",
    "visibility",
    "display",
    "position",
    "z-index",
    "font-size",
    "font-weight",
    "box-shadow",
    "background-image",
)


@dataclass
class ScanResult:
    snapshots: list[StyleSnapshot] = field(default_factory=list)
    errors: list[ClassificationError] = field(default_factory=list)
    visited: int = 0
    skipped_marked: int = 0
    skipped_empty: int = 0


class TreeScanner:
    """Produces per-cycle style snapshots from a HostTree."""

    def __init__(self, tree: HostTree):
        self.tree = tree

    def scan(self, root: Node | None = None, force: bool = False) -> ScanResult:
        """
        Snapshot every rendered node under root (whole document when None).

        Malformed style data on a node is recorded in ScanResult.errors and the
        node is skipped; the walk continues.
        """
        start = root if root is not None else self.tree.root()
        result = ScanResult()

        with time_block("scanner.scan.latency"):
            for node in self.tree.iter_descendants(start):
                result.visited += 1

                if not force and self.tree.has_marker(node):
                    result.skipped_marked += 1
                    continue

                if self.tree.bounding_box(node).is_empty:
                    result.skipped_empty += 1
                    continue

                try:
                    result.snapshots.append(self.snapshot(node))
                except ClassificationError as e:
                    if e.node_identity is None:
                        e.node_identity = self.tree.identity(node)
                    logger.debug("Skipping %s: %s", e.node_identity, e)
                    counter("scanner.classification_error")
                    result.errors.append(e)

        counter("scanner.nodes_visited", result.visited)
        return result

    def snapshot(self, node: Node) -> StyleSnapshot:
        """
        Build the snapshot for one node.

        Raises:
            ClassificationError: If the node's style data cannot be parsed
        """
        tree = self.tree
        style = tree.computed_style(node)
        attributes = tree.attributes(node)
        tag = tree.tag_name(node)
        classes = tuple(attributes.get("class", "").split())

        foreground = parse_color(style.get("color"))
        background = parse_color(style.get("background-color"), current_color=foreground)
        border_color = parse_color(style.get("border-color"), current_color=foreground)

        text = " ".join(tree.text_content(node).split())

        return StyleSnapshot(
            identity=tree.identity(node),
            tag=tag,
            element_id=attributes.get("id", ""),
            classes=classes,
            role=attributes.get("role", ""),
            aria_modal=attributes.get("aria-modal", "").lower() == "true",
            element_kind=detect_element_kind(tag, classes),
            background=background,
            foreground=foreground,
            border_color=border_color,
            border_style=style.get("border-style", "none").strip().lower(),
            border_width=parse_length(style.get("border-width")),
            opacity=parse_opacity(style.get("opacity")),
            visibility=style.get("visibility", "visible").strip().lower(),
            display=style.get("display", "block").strip().lower(),
            position=style.get("position", "static").strip().lower(),
            z_index=parse_z_index(style.get("z-index")),
            box=tree.bounding_box(node),
            viewport=tree.viewport(),
            text=text[:PROMPT_TEXT_SAMPLE_CHARS],
            parent=self._parent_snapshot(node),
            raw_styles={prop: style[prop] for prop in SAMPLED_PROPERTIES if prop in style},
            handle=weakref.ref(node),
        )

    def _parent_snapshot(self, node: Node) -> ParentSnapshot | None:
        parent = self.tree.parent(node)
        if parent is None:
            return None

        attributes = self.tree.attributes(parent)
        try:
            background = parse_color(self.tree.computed_style(parent).get("background-color"))
        except ClassificationError as e:
            # Parent context is advisory; the child is still classifiable
            logger.debug("Parent background unreadable for %s: %s", self.tree.identity(node), e)
            background = TRANSPARENT

        return ParentSnapshot(
            tag=self.tree.tag_name(parent),
            classes=tuple(attributes.get("class", "").split()),
            background=background,
        )
