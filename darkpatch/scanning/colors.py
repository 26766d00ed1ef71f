"""
Colour parsing and colour math

parse_color() accepts the forms hosts report for computed colours (rgb/rgba in
comma or space syntax, hex, `transparent`, a table of common named colours)
and raises ClassificationError for anything else, so the scanner can skip the
node instead of guessing.

Contrast follows WCAG 2.x: linearized sRGB channels,
L = 0.2126 R + 0.7152 G + 0.0722 B, ratio = (L1 + 0.05) / (L2 + 0.05).
"Light" and "dark" use the YIQ perceived brightness (r*299 + g*587 + b*114) / 1000.
"""

from __future__ import annotations

import re

from darkpatch.contracts.types import TRANSPARENT, Color
from darkpatch.errors import ClassificationError

NAMED_COLORS: dict[str, tuple[int, int, int]] = {
    "black": (0, 0, 0),
    "white": (255, 255, 255),
    "red": (255, 0, 0),
    "green": (0, 128, 0),
    "blue": (0, 0, 255),
    "yellow": (255, 255, 0),
    "gray": (128, 128, 128),
    "grey": (128, 128, 128),
    "silver": (192, 192, 192),
    "lightgray": (211, 211, 211),
    "lightgrey": (211, 211, 211),
    "darkgray": (169, 169, 169),
    "darkgrey": (169, 169, 169),
    "whitesmoke": (245, 245, 245),
    "gainsboro": (220, 220, 220),
    "ghostwhite": (248, 248, 255),
    "snow": (255, 250, 250),
    "ivory": (255, 255, 240),
    "navy": (0, 0, 128),
    "orange": (255, 165, 0),
    "purple": (128, 0, 128),
    "teal": (0, 128, 128),
    "maroon": (128, 0, 0),
    "olive": (128, 128, 0),
    "lime": (0, 255, 0),
    "aqua": (0, 255, 255),
    "fuchsia": (255, 0, 255),
}

_FUNC_RE = re.compile(r"^rgba?\((?P<args>[^)]*)\)$")
_HEX_RE = re.compile(r"^#(?P<hex>[0-9a-f]{3,4}|[0-9a-f]{6}|[0-9a-f]{8})$")
_LENGTH_RE = re.compile(r"^(?P<num>-?\d*\.?\d+)(?P<unit>px)?$")

BORDER_WIDTH_KEYWORDS = {"thin": 1.0, "medium": 3.0, "thick": 5.0}


def _channel(token: str) -> int:
    if token.endswith("%"):
        value = float(token[:-1]) * 255 / 100
    else:
        value = float(token)
    return max(0, min(255, round(value)))


def _alpha(token: str) -> float:
    if token.endswith("%"):
        value = float(token[:-1]) / 100
    else:
        value = float(token)
    return max(0.0, min(1.0, value))


def parse_color(value: str | None, current_color: Color | None = None) -> Color:
    """
    Parse a computed CSS colour.

    Args:
        value: CSS colour text; None or empty means transparent
        current_color: What `currentcolor` resolves to

    Raises:
        ClassificationError: If the value is not a recognizable colour
    """
    if value is None:
        return TRANSPARENT

    text = value.strip().lower()
    if not text or text == "transparent":
        return TRANSPARENT

    if text == "currentcolor":
        if current_color is None:
            raise ClassificationError("currentcolor used without a resolved foreground")
        return current_color

    if text in NAMED_COLORS:
        r, g, b = NAMED_COLORS[text]
        return Color(r, g, b)

    if match := _HEX_RE.match(text):
        digits = match.group("hex")
        if len(digits) in (3, 4):
            digits = "".join(ch * 2 for ch in digits)
        r, g, b = (int(digits[i : i + 2], 16) for i in (0, 2, 4))
        alpha = int(digits[6:8], 16) / 255 if len(digits) == 8 else 1.0
        return Color(r, g, b, round(alpha, 3))

    if match := _FUNC_RE.match(text):
        args = match.group("args").replace("/", " / ")
        if "," in args:
            parts = [p.strip() for p in args.split(",")]
        else:
            parts = [p for p in args.split() if p != "/"]
        try:
            if len(parts) not in (3, 4):
                raise ValueError(f"expected 3 or 4 components, got {len(parts)}")
            r, g, b = (_channel(p) for p in parts[:3])
            alpha = _alpha(parts[3]) if len(parts) == 4 else 1.0
        except ValueError as e:
            raise ClassificationError(f"Malformed colour {value!r}: {e}") from e
        return Color(r, g, b, alpha)

    raise ClassificationError(f"Unrecognized colour {value!r}")


def parse_length(value: str | None) -> float:
    """
    Parse a computed length in px. Multi-value shorthands resolve to the largest.

    Raises:
        ClassificationError: If a component is not a px length or keyword
    """
    if value is None:
        return 0.0
    widths = []
    for token in value.strip().lower().split():
        if token in BORDER_WIDTH_KEYWORDS:
            widths.append(BORDER_WIDTH_KEYWORDS[token])
            continue
        match = _LENGTH_RE.match(token)
        if not match:
            raise ClassificationError(f"Unsupported length {value!r}")
        widths.append(float(match.group("num")))
    return max(widths, default=0.0)


def parse_opacity(value: str | None) -> float:
    if value is None or not value.strip():
        return 1.0
    try:
        return _alpha(value.strip())
    except ValueError as e:
        raise ClassificationError(f"Malformed opacity {value!r}") from e


def parse_z_index(value: str | None) -> int | None:
    """Stacking order; None for `auto`."""
    if value is None or value.strip() in ("", "auto"):
        return None
    try:
        return int(float(value))
    except ValueError as e:
        raise ClassificationError(f"Malformed z-index {value!r}") from e


def _linearize(channel: int) -> float:
    c = channel / 255
    return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4


def relative_luminance(color: Color) -> float:
    return (
        0.2126 * _linearize(color.r)
        + 0.7152 * _linearize(color.g)
        + 0.0722 * _linearize(color.b)
    )


def contrast_ratio(first: Color, second: Color) -> float:
    """WCAG contrast ratio in [1, 21]; order of arguments does not matter."""
    l1 = relative_luminance(first)
    l2 = relative_luminance(second)
    brightest, darkest = max(l1, l2), min(l1, l2)
    return (brightest + 0.05) / (darkest + 0.05)


def perceived_brightness(color: Color) -> float:
    return (color.r * 299 + color.g * 587 + color.b * 114) / 1000


def is_light(color: Color, threshold: float = 128.0) -> bool:
    if color.is_transparent:
        return False
    return perceived_brightness(color) > threshold


def is_dark(color: Color, threshold: float = 128.0) -> bool:
    if color.is_transparent:
        return False
    return perceived_brightness(color) < threshold
