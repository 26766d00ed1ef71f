"""
Host tree contract

The engine never owns nodes. Everything it knows about the live document comes
through this protocol: a read surface (enumeration, computed style, geometry,
attributes, text) and a deliberately narrow write surface (one style block per
patched node, one boolean marker per node, one document-level mode marker).

Node objects are opaque to the engine; it only keeps weak references to them
and otherwise addresses nodes by their identity path.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any, Protocol, runtime_checkable

from darkpatch.contracts.types import BoundingBox

Node = Any

# Called with the mutated subtree root, or None when the host cannot scope the change
MutationListener = Callable[[Node | None], None]


@runtime_checkable
class HostTree(Protocol):
    """Read/annotate access to a live styled document tree."""

    def root(self) -> Node:
        """Document root node."""
        ...

    def iter_descendants(self, node: Node) -> Iterator[Node]:
        """Yield node and every descendant in document order."""
        ...

    def parent(self, node: Node) -> Node | None: ...

    def tag_name(self, node: Node) -> str:
        """Lower-case tag name."""
        ...

    def attributes(self, node: Node) -> Mapping[str, str]:
        """Element attributes (id, class, role, aria-*)."""
        ...

    def computed_style(self, node: Node) -> Mapping[str, str]:
        """
        Resolved CSS property values, keyed by CSS property name.

        Raises:
            ClassificationError: If the host cannot produce style data
        """
        ...

    def bounding_box(self, node: Node) -> BoundingBox: ...

    def text_content(self, node: Node) -> str: ...

    def viewport(self) -> tuple[float, float]:
        """(width, height) of the visible viewport in CSS pixels."""
        ...

    def identity(self, node: Node) -> str:
        """Stable identity path for node (id("x") or html/body/div[2] form)."""
        ...

    def resolve(self, identity: str) -> Node | None:
        """Inverse of identity(); None when the node is gone."""
        ...

    # --- restricted write surface ---

    def insert_style_block(self, block_id: str, css: str) -> None:
        """
        Insert or overwrite the style block with block_id.

        Raises:
            ApplyError: If the host rejects the write
        """
        ...

    def remove_style_block(self, block_id: str) -> bool:
        """Remove the style block; returns False when it did not exist."""
        ...

    def style_blocks(self) -> Mapping[str, str]:
        """Currently inserted style blocks by id."""
        ...

    def set_marker(self, node: Node, active: bool) -> None:
        """Toggle the per-node active-patch marker."""
        ...

    def has_marker(self, node: Node) -> bool: ...

    def set_mode_marker(self, active: bool) -> None:
        """Toggle the document-level dark-mode marker."""
        ...

    def mode_marker(self) -> bool: ...

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        """Register for mutation notifications; returns an unsubscribe callable."""
        ...
