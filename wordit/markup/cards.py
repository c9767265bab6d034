"""Lake-style ``<card>`` resolution.

Rich-text editors in the Lake dialect embed structured blocks as
``<card name="image" value="data:%7B...%7D"></card>``. Each card is decoded
and replaced by an equivalent plain HTML fragment. Undecodable or unknown
cards become an inert comment so sibling cards still convert. No network I/O.
"""

import html
import json
from collections.abc import Callable
from enum import Enum
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import unquote, urlparse

from bs4 import BeautifulSoup, Comment, Tag

from wordit.config.constants import IMAGE_EXTENSIONS, VIDEO_EXTENSIONS
from wordit.utils.fs import format_size
from wordit.utils.logging import get_logger

log = get_logger(__name__)


class CardKind(str, Enum):
    IMAGE = "image"
    CODE = "code"
    TABLE = "table"
    FILE = "file"
    VIDEO = "video"
    LINK = "link"


_KIND_ALIASES: dict[str, CardKind] = {
    "image": CardKind.IMAGE,
    "img": CardKind.IMAGE,
    "code": CardKind.CODE,
    "codeblock": CardKind.CODE,
    "table": CardKind.TABLE,
    "file": CardKind.FILE,
    "attachment": CardKind.FILE,
    "video": CardKind.VIDEO,
    "link": CardKind.LINK,
    "bookmark": CardKind.LINK,
}


class CardDecodeError(ValueError):
    """Card payload could not be turned into structured data."""


def decode_card_value(value: str) -> Any:
    """Decode a card ``value`` attribute into structured data.

    URL-decode, drop a ``data:`` prefix, HTML-entity decode, strip one pair of
    wrapping single quotes, then parse JSON.

    Raises:
        CardDecodeError: If the payload is not valid JSON after decoding
    """
    decoded = unquote(value)
    if decoded.startswith("data:"):
        decoded = decoded[len("data:") :]
    decoded = html.unescape(decoded).strip()
    if len(decoded) >= 2 and decoded.startswith("'") and decoded.endswith("'"):
        decoded = decoded[1:-1]

    try:
        return json.loads(decoded)
    except (json.JSONDecodeError, TypeError) as e:
        raise CardDecodeError(f"invalid card payload: {e}") from e


def _field(data: Any, *names: str) -> Any:
    """Look a field up at the top level, then inside a nested ``data`` object."""
    if not isinstance(data, dict):
        return None
    nested = data.get("data") if isinstance(data.get("data"), dict) else {}
    for name in names:
        if data.get(name) not in (None, ""):
            return data[name]
        if nested.get(name) not in (None, ""):
            return nested[name]
    return None


def _extension(url: Any) -> str:
    if not isinstance(url, str):
        return ""
    return PurePosixPath(urlparse(url).path).suffix.lower()


def infer_card_kind(data: Any, declared: list[str | None] | None = None) -> CardKind | None:
    """Infer the kind of a decoded card.

    Explicit names win (card attributes first, then payload ``type``/``name``).
    Otherwise fall back to field heuristics: code fields, table rows,
    file-extension sniffing on ``src``/``url``, and finally ``href``.
    """
    candidates = list(declared or [])
    candidates += [_field(data, "type"), _field(data, "name")]
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.lower() in _KIND_ALIASES:
            return _KIND_ALIASES[candidate.lower()]

    if not isinstance(data, dict):
        return None
    if _field(data, "code", "language", "lang") is not None:
        return CardKind.CODE
    if isinstance(_field(data, "rows"), list):
        return CardKind.TABLE

    source = _field(data, "src", "url")
    if source is not None:
        ext = _extension(source)
        if ext in IMAGE_EXTENSIONS:
            return CardKind.IMAGE
        if ext in VIDEO_EXTENSIONS:
            return CardKind.VIDEO
        if ext:
            return CardKind.FILE
        return CardKind.LINK
    if _field(data, "href") is not None:
        return CardKind.LINK
    return None


def _esc(value: Any) -> str:
    return html.escape(str(value), quote=True)


def _positive_int(value: Any) -> int | None:
    try:
        number = round(float(value))
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def convert_image_card(data: Any) -> str:
    src = _field(data, "src", "url")
    if not isinstance(src, str):
        log.warning("Image card without src")
        return ""
    parts = [f'<img src="{_esc(src)}"']
    alt = _field(data, "alt")
    if alt:
        parts.append(f'alt="{_esc(alt)}"')
    width = _positive_int(_field(data, "width"))
    height = _positive_int(_field(data, "height"))
    if width:
        parts.append(f'width="{width}"')
    if height:
        parts.append(f'height="{height}"')
    return " ".join(parts) + ">"


def convert_code_card(data: Any) -> str:
    code = _field(data, "code", "content")
    if not code:
        log.warning("Code card without code")
        return ""
    language = _field(data, "language", "lang")
    class_attr = f' class="language-{_esc(language)}"' if language else ""
    return f"<pre><code{class_attr}>{_esc(code)}</code></pre>"


def convert_table_card(data: Any) -> str:
    rows = _field(data, "rows")
    if not isinstance(rows, list) or not rows:
        log.warning("Table card without rows")
        return ""
    out = ['<table border="1">']
    for index, row in enumerate(rows):
        cells = row if isinstance(row, list) else (row.get("cells", []) if isinstance(row, dict) else [])
        tag = "th" if index == 0 else "td"
        out.append("<tr>")
        for cell in cells:
            content = cell if isinstance(cell, str) else _field(cell, "content", "value") or ""
            out.append(f"<{tag}>{_esc(content)}</{tag}>")
        out.append("</tr>")
    out.append("</table>")
    return "".join(out)


def convert_file_card(data: Any) -> str:
    name = _field(data, "name", "title") or "attachment"
    url = _field(data, "url", "src")
    size = _field(data, "size")
    label = f'<a href="{_esc(url)}">{_esc(name)}</a>' if url else _esc(name)
    if isinstance(size, (int, float)) and size >= 0:
        label += f" ({format_size(size)})"
    return f"<p>📎 {label}</p>"


def convert_video_card(data: Any) -> str:
    url = _field(data, "url", "src")
    title = _field(data, "title") or "video"
    if not url:
        return f"<p>🎬 {_esc(title)}</p>"
    fragment = f'<p>🎬 <a href="{_esc(url)}">{_esc(title)}</a></p>'
    poster = _field(data, "poster", "cover")
    if poster:
        fragment += f'<img src="{_esc(poster)}" alt="{_esc(title)}">'
    return fragment


def convert_link_card(data: Any) -> str:
    url = _field(data, "url", "href")
    if not url:
        log.warning("Link card without url")
        return ""
    title = _field(data, "title") or url
    fragment = f'<p><a href="{_esc(url)}">{_esc(title)}</a>'
    description = _field(data, "description")
    if description:
        fragment += f"<br><small>{_esc(description)}</small>"
    return fragment + "</p>"


CARD_CONVERTERS: dict[CardKind, Callable[[Any], str]] = {
    CardKind.IMAGE: convert_image_card,
    CardKind.CODE: convert_code_card,
    CardKind.TABLE: convert_table_card,
    CardKind.FILE: convert_file_card,
    CardKind.VIDEO: convert_video_card,
    CardKind.LINK: convert_link_card,
}


def _convert_card(card: Tag) -> str | None:
    """Return the replacement fragment, or None if the card is unresolvable."""
    value = card.get("value")
    if not isinstance(value, str) or not value:
        log.warning("Card without value attribute", name=card.get("name"))
        return None
    try:
        data = decode_card_value(value)
    except CardDecodeError as e:
        log.warning("Undecodable card payload", name=card.get("name"), error=str(e))
        return None

    kind = infer_card_kind(data, [card.get("name"), card.get("type")])
    if kind is None:
        log.warning("Unknown card kind", name=card.get("name"), type=card.get("type"))
        return None

    log.debug("Converting card", kind=kind.value)
    return CARD_CONVERTERS[kind](data)


def resolve_cards(markup: str) -> str:
    """Replace every ``<card>`` with its canonical HTML fragment."""
    if not markup or "<card" not in markup.lower():
        return markup

    soup = BeautifulSoup(markup, "html.parser")
    cards = soup.find_all("card")

    for card in reversed(cards):  # innermost first when cards were left unclosed
        try:
            fragment = _convert_card(card)
        except Exception as e:
            log.warning("Card conversion failed", error=str(e))
            fragment = None

        if fragment is None:
            card.insert_before(Comment(f" unresolved card: {card.get('name') or 'unknown'} "))
        elif fragment:
            for node in list(BeautifulSoup(fragment, "html.parser").contents):
                card.insert_before(node)
        # Keep anything a malformed, unclosed card swallowed
        card.unwrap()

    return str(soup)
