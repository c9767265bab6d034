"""Style resolution for markup elements and content nodes.

``StyleResolver.resolve`` turns a tag, its attributes and the parent's
descriptor into a new descriptor while the parser walks the markup.
``resolve_style`` derives the block-level descriptor (alignment, indent) of a
finished content node from its ancestor chain for the assembler. Both are
pure; the innermost explicit style always wins.
"""

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from wordit.config.constants import DEFAULT_CODE_FONT
from wordit.markup.tree import (
    Alignment,
    CodeBlock,
    ContentNode,
    Heading,
    Quote,
    TableCell,
)
from wordit.utils.logging import get_logger

log = get_logger(__name__)

_ALIGNMENTS: dict[str, Alignment] = {
    "left": "left",
    "start": "left",
    "center": "center",
    "middle": "center",
    "right": "right",
    "end": "right",
    "justify": "justify",
}

NAMED_COLORS = {
    "black": "000000",
    "white": "FFFFFF",
    "red": "FF0000",
    "green": "008000",
    "lime": "00FF00",
    "blue": "0000FF",
    "navy": "000080",
    "yellow": "FFFF00",
    "orange": "FFA500",
    "purple": "800080",
    "fuchsia": "FF00FF",
    "magenta": "FF00FF",
    "aqua": "00FFFF",
    "cyan": "00FFFF",
    "teal": "008080",
    "maroon": "800000",
    "olive": "808000",
    "silver": "C0C0C0",
    "gray": "808080",
    "grey": "808080",
    "brown": "A52A2A",
    "pink": "FFC0CB",
    "gold": "FFD700",
    "indigo": "4B0082",
    "violet": "EE82EE",
    "darkred": "8B0000",
    "darkgreen": "006400",
    "darkblue": "00008B",
    "lightgray": "D3D3D3",
    "lightgrey": "D3D3D3",
    "darkgray": "A9A9A9",
    "darkgrey": "A9A9A9",
}

_HEX_COLOR = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_RGB_COLOR = re.compile(r"^rgba?\(\s*([\d.]+%?)\s*[, ]\s*([\d.]+%?)\s*[, ]\s*([\d.]+%?)(?:\s*[,/]\s*[\d.]+%?)?\s*\)$")
_FONT_SIZE = re.compile(r"^([\d.]+)\s*(px|pt)?$")

# Font sizes for CSS keywords, in points
_FONT_SIZE_KEYWORDS = {
    "xx-small": 7.0,
    "x-small": 7.5,
    "small": 10.0,
    "medium": 12.0,
    "large": 13.5,
    "x-large": 18.0,
    "xx-large": 24.0,
}


@dataclass(frozen=True)
class StyleDescriptor:
    """Resolved presentation of one element or content node."""

    bold: bool | None = None  # None: not set, so the enclosing style applies
    italic: bool | None = None
    underline: bool = False
    strikethrough: bool = False
    color: str | None = None  # RRGGBB
    background: str | None = None  # RRGGBB
    font: str | None = None
    size: float | None = None  # points
    alignment: Alignment | None = None
    indent: int = 0  # nesting levels
    monospace: bool = False

    def run_style(self) -> dict[str, Any]:
        """Keyword arguments for a ``TextRun`` carrying this style."""
        return {
            "bold": self.bold,
            "italic": self.italic,
            "underline": self.underline,
            "strikethrough": self.strikethrough,
            "color": self.color,
            "background": self.background,
            "font": self.font,
            "size": self.size,
        }


TAG_DEFAULTS: dict[str, dict[str, Any]] = {
    "b": {"bold": True},
    "strong": {"bold": True},
    "i": {"italic": True},
    "em": {"italic": True},
    "u": {"underline": True},
    "ins": {"underline": True},
    "s": {"strikethrough": True},
    "strike": {"strikethrough": True},
    "del": {"strikethrough": True},
    "mark": {"background": "FFFF00"},
    "code": {"monospace": True, "font": DEFAULT_CODE_FONT},
    "pre": {"monospace": True, "font": DEFAULT_CODE_FONT},
    "blockquote": {"italic": True},
}


def parse_css_declarations(style: str | None) -> dict[str, str]:
    """Parse an inline ``style`` attribute into lowercase property names."""
    declarations: dict[str, str] = {}
    if not style:
        return declarations
    for declaration in style.split(";"):
        prop, sep, value = declaration.partition(":")
        if sep and prop.strip() and value.strip():
            declarations[prop.strip().lower()] = value.strip()
    return declarations


def _channel(value: str) -> int:
    if value.endswith("%"):
        return round(min(float(value[:-1]), 100.0) * 2.55)
    return min(round(float(value)), 255)


def normalize_color(value: str | None) -> str | None:
    """Convert a CSS color to ``RRGGBB``; None when unrecognized."""
    if not value:
        return None
    value = value.strip().lower().replace("!important", "").strip()

    match = _HEX_COLOR.match(value)
    if match:
        digits = match.group(1)
        if len(digits) == 3:
            digits = "".join(c * 2 for c in digits)
        return digits.upper()

    match = _RGB_COLOR.match(value)
    if match:
        try:
            return "".join(f"{_channel(c):02X}" for c in match.groups())
        except ValueError:
            return None

    if value in NAMED_COLORS:
        return NAMED_COLORS[value]

    log.debug("Unrecognized color dropped", color=value)
    return None


def parse_font_size(value: str | None) -> float | None:
    """Convert a CSS font size (px, pt, or keyword) to points."""
    if not value:
        return None
    value = value.strip().lower()
    if value in _FONT_SIZE_KEYWORDS:
        return _FONT_SIZE_KEYWORDS[value]
    match = _FONT_SIZE.match(value)
    if not match:
        return None
    number = float(match.group(1))
    if number <= 0:
        return None
    # Bare numbers are treated as pixels
    points = number if match.group(2) == "pt" else number * 0.75
    return round(points * 2) / 2  # Word stores half-points


def parse_alignment(value: str | None) -> Alignment | None:
    if not value:
        return None
    return _ALIGNMENTS.get(value.strip().lower())


def _first_font_family(value: str) -> str | None:
    family = value.split(",")[0].strip().strip("'\"")
    return family or None


class StyleResolver:
    """Resolve element styles from tag defaults and inline declarations."""

    def __init__(self, code_font: str = DEFAULT_CODE_FONT) -> None:
        self.code_font = code_font

    def resolve(
        self,
        tag: str,
        attrs: Mapping[str, Any] | None = None,
        parent: StyleDescriptor | None = None,
    ) -> StyleDescriptor:
        """Resolve the descriptor of an element.

        Args:
            tag: Lowercase tag name
            attrs: Element attributes (``style``, ``align``)
            parent: Descriptor of the enclosing element

        Returns:
            Inherited style overlaid with tag defaults, then explicit styles
        """
        style = parent or StyleDescriptor()
        changes: dict[str, Any] = dict(TAG_DEFAULTS.get(tag, {}))
        if changes.get("monospace"):
            changes["font"] = self.code_font

        attrs = attrs or {}
        align = parse_alignment(attrs.get("align"))
        if align:
            changes["alignment"] = align

        changes.update(self._from_css(parse_css_declarations(attrs.get("style"))))
        return replace(style, **changes) if changes else style

    def _from_css(self, css: dict[str, str]) -> dict[str, Any]:
        changes: dict[str, Any] = {}

        weight = css.get("font-weight", "").lower()
        if weight in ("bold", "bolder"):
            changes["bold"] = True
        elif weight in ("normal", "lighter"):
            changes["bold"] = False
        elif weight.isdigit():
            changes["bold"] = int(weight) >= 600

        font_style = css.get("font-style", "").lower()
        if font_style in ("italic", "oblique"):
            changes["italic"] = True
        elif font_style == "normal":
            changes["italic"] = False

        decoration = (css.get("text-decoration-line") or css.get("text-decoration") or "").lower()
        if decoration:
            if "none" in decoration:
                changes["underline"] = False
                changes["strikethrough"] = False
            if "underline" in decoration:
                changes["underline"] = True
            if "line-through" in decoration:
                changes["strikethrough"] = True

        if "color" in css:
            color = normalize_color(css["color"])
            if color:
                changes["color"] = color

        background = css.get("background-color") or css.get("background")
        if background:
            color = normalize_color(background.split()[0])
            if color:
                changes["background"] = color

        size = parse_font_size(css.get("font-size"))
        if size:
            changes["size"] = size

        if css.get("font-family"):
            family = _first_font_family(css["font-family"])
            if family:
                changes["font"] = family

        align = parse_alignment(css.get("text-align"))
        if align:
            changes["alignment"] = align

        return changes


_BLOCK_DEFAULT = StyleDescriptor()


def resolve_style(node: ContentNode | TableCell, ancestors: Sequence[StyleDescriptor] = ()) -> StyleDescriptor:
    """Derive the block-level descriptor of a content node.

    Ancestors are ordered outermost first and carry cumulative indents.
    Alignment is inherited from the innermost ancestor that declares one and
    overridden by the node's own alignment. Headings and header cells are
    bold, which a run's own explicit weight still overrides. Each quote adds
    one indent level; table cells restart at zero.
    """
    alignment: Alignment | None = None
    for ancestor in ancestors:
        if ancestor.alignment:
            alignment = ancestor.alignment
    indent = ancestors[-1].indent if ancestors else 0
    bold = ancestors[-1].bold if ancestors else None

    own_alignment = getattr(node, "alignment", None)
    if own_alignment:
        alignment = own_alignment

    changes: dict[str, Any] = {"alignment": alignment, "indent": indent, "bold": bold}
    if isinstance(node, Quote):
        changes["indent"] = indent + 1
    elif isinstance(node, CodeBlock):
        changes["monospace"] = True
        changes["font"] = DEFAULT_CODE_FONT
    elif isinstance(node, Heading):
        changes["bold"] = True
    elif isinstance(node, TableCell):
        changes["indent"] = 0
        changes["bold"] = True if node.header else None

    return replace(_BLOCK_DEFAULT, **changes)
