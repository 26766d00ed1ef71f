"""
In-memory host tree

A complete HostTree implementation backed by plain Python objects. Used by the
CLI (documents captured as JSON) and by the test suite. Computed style is
resolved from each element's declared style plus CSS defaults; `color` and
`visibility` inherit from the parent like they do in a browser.

JSON document shape:

    {
      "viewport": {"width": 1920, "height": 1080},
      "root": {
        "tag": "html",
        "attributes": {"id": "...", "class": "a b", "role": "..."},
        "style": {"background-color": "rgba(0, 0, 0, 0)", ...},
        "box": {"x": 0, "y": 0, "width": 1920, "height": 1080},
        "text": "own text",
        "children": [...]
      }
    }
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any

from darkpatch.contracts.types import BoundingBox
from darkpatch.errors import ApplyError, ClassificationError
from darkpatch.host.tree import MutationListener
from darkpatch.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_STYLE: dict[str, str] = {
    "background-color": "rgba(0, 0, 0, 0)",
    "color": "rgb(0, 0, 0)",
    "border-color": "rgb(0, 0, 0)",
    "border-style": "none",
    "border-width": "0px",
    "opacity": "1",
    "visibility": "visible",
    "display": "block",
    "position": "static",
    "z-index": "auto",
}

INHERITED_PROPERTIES = frozenset({"color", "visibility"})


class Element:
    """One node of an in-memory document."""

    def __init__(
        self,
        tag: str,
        attributes: Mapping[str, str] | None = None,
        style: Mapping[str, Any] | None = None,
        box: BoundingBox | None = None,
        text: str = "",
        children: list[Element] | None = None,
    ) -> None:
        self.tag = tag.lower()
        self.attributes: dict[str, str] = dict(attributes or {})
        self.style: dict[str, Any] = dict(style or {})
        self.box = box or BoundingBox()
        self.text = text
        self.parent: Element | None = None
        self.children: list[Element] = []
        self.marked = False
        for child in children or []:
            self.append(child)

    def append(self, child: Element) -> Element:
        child.parent = self
        self.children.append(child)
        return child

    @property
    def element_id(self) -> str:
        return self.attributes.get("id", "")

    @property
    def classes(self) -> list[str]:
        return self.attributes.get("class", "").split()

    def __repr__(self) -> str:
        suffix = f"#{self.element_id}" if self.element_id else ""
        classes = "".join(f".{c}" for c in self.classes)
        return f"<Element {self.tag}{suffix}{classes}>"


def _element_from_dict(data: Mapping[str, Any]) -> Element:
    if "tag" not in data:
        raise ValueError("Element definition requires a 'tag'")

    attributes = dict(data.get("attributes") or {})
    # Shorthands
    if "id" in data:
        attributes["id"] = data["id"]
    if "classes" in data:
        attributes["class"] = " ".join(data["classes"])
    if "role" in data:
        attributes["role"] = data["role"]

    box_data = data.get("box") or {}
    box = BoundingBox(
        x=float(box_data.get("x", 0)),
        y=float(box_data.get("y", 0)),
        width=float(box_data.get("width", 0)),
        height=float(box_data.get("height", 0)),
    )

    return Element(
        tag=data["tag"],
        attributes=attributes,
        style=data.get("style") or {},
        box=box,
        text=data.get("text", ""),
        children=[_element_from_dict(child) for child in data.get("children") or []],
    )


class DocumentTree:
    """In-memory HostTree with mutation notifications and a style-block sheet."""

    def __init__(
        self,
        root: Element | None = None,
        viewport: tuple[float, float] = (1920.0, 1080.0),
    ) -> None:
        self._root = root or Element("html", children=[Element("body")])
        self._viewport = viewport
        self._style_blocks: dict[str, str] = {}
        self._mode_marker = False
        self._listeners: list[MutationListener] = []
        # Simulates a host policy (e.g. CSP) refusing style writes
        self.reject_writes = False

    # --- construction ---

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DocumentTree:
        viewport = data.get("viewport") or {}
        return cls(
            root=_element_from_dict(data["root"]),
            viewport=(float(viewport.get("width", 1920)), float(viewport.get("height", 1080))),
        )

    @classmethod
    def from_json(cls, source: str | Path) -> DocumentTree:
        """Load from a JSON file path or a JSON string."""
        if isinstance(source, Path) or not source.lstrip().startswith("{"):
            with open(source) as f:
                return cls.from_dict(json.load(f))
        return cls.from_dict(json.loads(source))

    # --- read surface ---

    def root(self) -> Element:
        return self._root

    def iter_descendants(self, node: Element) -> Iterator[Element]:
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))

    def parent(self, node: Element) -> Element | None:
        return node.parent

    def tag_name(self, node: Element) -> str:
        return node.tag

    def attributes(self, node: Element) -> Mapping[str, str]:
        return dict(node.attributes)

    def computed_style(self, node: Element) -> Mapping[str, str]:
        if not isinstance(node.style, Mapping):
            raise ClassificationError(
                f"Style data for {node!r} is not a mapping", node_identity=self.identity(node)
            )

        resolved = dict(DEFAULT_STYLE)
        for prop in INHERITED_PROPERTIES:
            ancestor = node.parent
            while ancestor is not None:
                if prop in ancestor.style:
                    resolved[prop] = str(ancestor.style[prop])
                    break
                ancestor = ancestor.parent
        for prop, value in node.style.items():
            if value is None:
                raise ClassificationError(
                    f"Style property {prop!r} of {node!r} has no value",
                    node_identity=self.identity(node),
                )
            resolved[prop] = str(value)
        return resolved

    def bounding_box(self, node: Element) -> BoundingBox:
        return node.box

    def text_content(self, node: Element) -> str:
        return "".join(n.text for n in self.iter_descendants(node))

    def viewport(self) -> tuple[float, float]:
        return self._viewport

    def identity(self, node: Element) -> str:
        if node.element_id:
            return f'id("{node.element_id}")'
        parent = node.parent
        if parent is None:
            return node.tag
        index = 1
        for sibling in parent.children:
            if sibling is node:
                break
            if sibling.tag == node.tag:
                index += 1
        return f"{self.identity(parent)}/{node.tag}[{index}]"

    def resolve(self, identity: str) -> Element | None:
        for node in self.iter_descendants(self._root):
            if self.identity(node) == identity:
                return node
        return None

    # --- write surface ---

    def insert_style_block(self, block_id: str, css: str) -> None:
        if self.reject_writes:
            raise ApplyError(f"Host rejected style block {block_id}")
        self._style_blocks[block_id] = css

    def remove_style_block(self, block_id: str) -> bool:
        if self.reject_writes:
            raise ApplyError(f"Host rejected removal of style block {block_id}")
        return self._style_blocks.pop(block_id, None) is not None

    def style_blocks(self) -> Mapping[str, str]:
        return dict(self._style_blocks)

    def set_marker(self, node: Element, active: bool) -> None:
        node.marked = active

    def has_marker(self, node: Element) -> bool:
        return node.marked

    def marked_nodes(self) -> list[Element]:
        return [n for n in self.iter_descendants(self._root) if n.marked]

    def set_mode_marker(self, active: bool) -> None:
        self._mode_marker = active

    def mode_marker(self) -> bool:
        return self._mode_marker

    # --- mutations ---

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, node: Element | None = None) -> None:
        """Deliver a mutation notification (None = unscoped)."""
        for listener in list(self._listeners):
            try:
                listener(node)
            except Exception as e:
                logger.warning("Mutation listener failed: %s", e)

    def append_child(self, parent: Element, child: Element) -> Element:
        parent.append(child)
        self.notify(parent)
        return child

    def remove_child(self, parent: Element, child: Element) -> None:
        parent.children.remove(child)
        child.parent = None
        self.notify(parent)

    def set_style(self, node: Element, prop: str, value: str) -> None:
        node.style[prop] = value
        self.notify(node)

    def set_attribute(self, node: Element, name: str, value: str) -> None:
        node.attributes[name] = value
        self.notify(node)
