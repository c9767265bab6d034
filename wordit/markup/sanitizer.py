"""Allow-list HTML sanitizer.

Unknown tags are unwrapped (their text survives), dangerous containers are
removed together with their content, and attributes are filtered against a
fixed allow-list. ``sanitize`` never raises.
"""

import html
import re

from bs4 import BeautifulSoup, Comment, Doctype, ProcessingInstruction, Tag

from wordit.utils.logging import get_logger

log = get_logger(__name__)

ALLOWED_TAGS = frozenset(
    {
        "h1", "h2", "h3", "h4", "h5", "h6",
        "p", "br", "hr",
        "strong", "em", "u", "del", "s", "strike", "b", "i", "ins", "mark", "small",
        "ul", "ol", "li",
        "table", "thead", "tbody", "tfoot", "tr", "th", "td",
        "img", "a",
        "pre", "code",
        "blockquote",
        "span", "div", "section", "article",
        "card",
    }
)  # fmt: skip

ALLOWED_ATTRIBUTES = frozenset(
    {
        "href", "src", "alt", "title",
        "style", "class", "align",
        "colspan", "rowspan",
        "width", "height",
        "value", "type", "name",
    }
)  # fmt: skip

# Removed together with everything inside them
DROP_WITH_CONTENT = frozenset(
    {
        "script", "style", "iframe", "frame", "frameset", "object", "embed", "applet",
        "noscript", "template", "head", "title", "meta", "link", "base",
        "svg", "math", "form", "input", "button", "select", "textarea", "option",
    }
)  # fmt: skip

ALLOWED_CSS_PROPERTIES = frozenset(
    {
        "color", "background-color", "background",
        "font-weight", "font-style", "font-size", "font-family",
        "text-decoration", "text-decoration-line", "text-align",
    }
)  # fmt: skip

_URL_ATTRIBUTES = ("href", "src")
_SAFE_SCHEMES = ("http", "https", "mailto", "tel", "ftp")
_SCHEME_PATTERN = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*):")
_CONTROL_CHARS = re.compile(r"[\x00-\x20\x7f]+")


def _is_safe_url(tag_name: str, attr: str, value: str) -> bool:
    compact = _CONTROL_CHARS.sub("", value)
    match = _SCHEME_PATTERN.match(compact)
    if not match:
        return True  # relative or fragment
    scheme = match.group(1).lower()
    if scheme == "data":
        return tag_name == "img" and attr == "src" and compact.lower().startswith("data:image/")
    return scheme in _SAFE_SCHEMES


def _clean_style(value: str) -> str | None:
    kept = []
    for declaration in value.split(";"):
        prop, sep, val = declaration.partition(":")
        prop = prop.strip().lower()
        val = val.strip()
        if not sep or prop not in ALLOWED_CSS_PROPERTIES or not val:
            continue
        lowered = val.lower()
        if "expression(" in lowered or "url(" in lowered or "javascript:" in lowered:
            continue
        kept.append(f"{prop}: {val}")
    return "; ".join(kept) if kept else None


def _clean_attributes(tag: Tag) -> None:
    cleaned: dict[str, str] = {}
    for name, value in tag.attrs.items():
        name = name.lower()
        if name not in ALLOWED_ATTRIBUTES:
            continue
        if isinstance(value, list):  # multi-valued attributes such as class
            value = " ".join(value)
        if name in _URL_ATTRIBUTES and not _is_safe_url(tag.name, name, value):
            log.debug("Dropping unsafe URL attribute", tag=tag.name, attribute=name)
            continue
        if name == "style":
            value = _clean_style(value)
            if value is None:
                continue
        cleaned[name] = value
    tag.attrs = cleaned


def sanitize(markup: str | None) -> str:
    """Restrict markup to the allow-listed tags and attributes.

    Args:
        markup: Arbitrary, possibly hostile HTML

    Returns:
        Safe markup; empty string for empty input
    """
    if not markup or not markup.strip():
        return ""

    try:
        soup = BeautifulSoup(markup, "html.parser")

        for node in soup.find_all(string=lambda s: isinstance(s, (Comment, Doctype, ProcessingInstruction))):
            node.extract()

        for tag in soup.find_all(True):
            if tag.decomposed:
                continue
            if tag.name in DROP_WITH_CONTENT:
                tag.decompose()

        for tag in soup.find_all(True):
            if tag.name not in ALLOWED_TAGS:
                tag.unwrap()
            else:
                _clean_attributes(tag)

        return str(soup)
    except Exception as e:
        log.warning("Sanitizer failed, falling back to escaped text", error=str(e))
        return f"<p>{html.escape(markup)}</p>"
