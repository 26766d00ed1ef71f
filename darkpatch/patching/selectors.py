"""Stable selectors and style-block ids for patched nodes."""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable

BLOCK_ID_PREFIX = "darkpatch-"

_SAFE_CHAR = re.compile(r"[A-Za-z0-9_\-]")


def css_escape(ident: str) -> str:
    """Escape an identifier for use in a CSS selector (CSSOM serialize-an-identifier)."""
    out = []
    for index, ch in enumerate(ident):
        if ch == "\0":
            out.append("�")
        elif index == 0 and ch.isdigit():
            out.append(f"\\{ord(ch):x} ")
        elif index == 1 and ch.isdigit() and ident[0] == "-":
            out.append(f"\\{ord(ch):x} ")
        elif _SAFE_CHAR.match(ch) or ord(ch) >= 0x80:
            out.append(ch)
        else:
            out.append(f"\\{ch}")
    if ident == "-":
        return "\\-"
    return "".join(out)


def stable_selector(tag: str, element_id: str = "", classes: Iterable[str] = ()) -> str:
    """tag + #id + .class chain, in the node's own class order."""
    selector = tag.lower()
    if element_id:
        selector += f"#{css_escape(element_id)}"
    for cls in classes:
        if cls:
            selector += f".{css_escape(cls)}"
    return selector


def block_id_for(node_identity: str) -> str:
    digest = hashlib.sha1(node_identity.encode("utf-8")).hexdigest()
    return f"{BLOCK_ID_PREFIX}{digest[:12]}"
