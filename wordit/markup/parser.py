"""Markup-to-tree parser.

Builds a ``ContentTree`` from sanitized, card-resolved HTML. The forgiving
``html.parser`` backend closes unbalanced elements at end of input; unknown
elements degrade to a paragraph holding their text.
"""

import re
from collections.abc import Callable

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment, Doctype, ProcessingInstruction

from wordit.config.constants import DEFAULT_CODE_FONT
from wordit.markup.styles import StyleDescriptor, StyleResolver
from wordit.markup.tree import (
    CodeBlock,
    ContentNode,
    ContentTree,
    Divider,
    Heading,
    Hyperlink,
    ImageRef,
    Inline,
    ListItem,
    Paragraph,
    Quote,
    Table,
    TableCell,
    TextRun,
)
from wordit.utils.logging import get_logger

log = get_logger(__name__)

HEADING_TAGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}

INLINE_TAGS = frozenset(
    {
        "span", "strong", "b", "em", "i", "u", "ins", "s", "strike", "del",
        "mark", "small", "code", "a", "br", "img", "font", "sub", "sup", "label",
    }
)  # fmt: skip

CONTAINER_TAGS = frozenset(
    {"div", "section", "article", "body", "html", "main", "header", "footer", "center", "card"}
)

_WHITESPACE = re.compile(r"\s+")
_SKIPPED_STRINGS = (Comment, Doctype, ProcessingInstruction)
_LANGUAGE_PREFIXES = ("language-", "lang-")

# An inline walk yields runs and images; images split the enclosing block
Segment = Inline | ImageRef


def _dimension(value: object) -> int | None:
    if value is None:
        return None
    match = re.match(r"^\s*(\d+(?:\.\d+)?)\s*(px)?\s*$", str(value))
    if not match:
        return None
    number = round(float(match.group(1)))
    return number if number > 0 else None


def _span(value: object) -> int:
    try:
        return max(1, min(int(str(value)), 1000))
    except (TypeError, ValueError):
        return 1


def _classes(tag: Tag) -> list[str]:
    value = tag.get("class") or []
    return value.split() if isinstance(value, str) else list(value)


def _code_language(pre: Tag) -> str | None:
    candidates = [pre]
    code = pre.find("code")
    if isinstance(code, Tag):
        candidates.insert(0, code)
    for tag in candidates:
        for cls in _classes(tag):
            for prefix in _LANGUAGE_PREFIXES:
                if cls.startswith(prefix) and len(cls) > len(prefix):
                    return cls[len(prefix) :]
    return None


def _tidy_runs(runs: list[Inline]) -> list[Inline]:
    """Merge adjacent same-style runs and trim block-edge whitespace."""
    merged: list[Inline] = []
    for run in runs:
        if isinstance(run, TextRun):
            if not run.text:
                continue
            previous = merged[-1] if merged else None
            if isinstance(previous, TextRun) and previous.same_style(run):
                previous.text += run.text
                continue
            # Collapse whitespace across a run boundary
            if previous is not None and previous.text.endswith((" ", "\n")) and run.text.startswith(" "):
                run.text = run.text.lstrip(" ")
                if not run.text:
                    continue
        merged.append(run)

    while merged and isinstance(merged[0], TextRun):
        merged[0].text = merged[0].text.lstrip(" ")
        if merged[0].text:
            break
        merged.pop(0)
    while merged and isinstance(merged[-1], TextRun):
        merged[-1].text = merged[-1].text.rstrip(" ")
        if merged[-1].text:
            break
        merged.pop()
    return merged


def _has_content(runs: list[Inline]) -> bool:
    return any(isinstance(r, Hyperlink) or r.text.strip() for r in runs)


class MarkupParser:
    """Parse canonical markup into a content tree."""

    def __init__(self, style_resolver: StyleResolver | None = None, code_font: str = DEFAULT_CODE_FONT) -> None:
        self.styles = style_resolver or StyleResolver(code_font=code_font)

    def parse(self, markup: str | None) -> ContentTree:
        """Parse markup into a content tree.

        Args:
            markup: Sanitized markup

        Returns:
            Content tree; empty for empty or unparseable input
        """
        if not markup or not markup.strip():
            return ContentTree()

        try:
            soup = BeautifulSoup(markup, "html.parser")
            nodes = self._parse_blocks(soup, StyleDescriptor())
        except Exception as e:
            log.warning("Markup could not be parsed", error=str(e))
            return ContentTree()

        log.debug("Parsed markup", nodes=len(nodes))
        return ContentTree(nodes=nodes)

    # Block level

    def _parse_blocks(self, parent: Tag, style: StyleDescriptor) -> list[ContentNode]:
        nodes: list[ContentNode] = []
        pending: list[Segment] = []

        def flush() -> None:
            self._emit_segments(
                pending,
                nodes,
                lambda runs: Paragraph(runs=runs, alignment=style.alignment),
                default_alignment=style.alignment,
            )
            pending.clear()

        for child in parent.children:
            if isinstance(child, _SKIPPED_STRINGS):
                continue
            if isinstance(child, NavigableString):
                pending.append(TextRun(_WHITESPACE.sub(" ", str(child)), **style.run_style()))
                continue
            if not isinstance(child, Tag):
                continue

            name = child.name.lower()
            if name in INLINE_TAGS:
                self._walk_inline(child, style, pending)
                continue

            flush()
            nodes.extend(self._parse_block(child, name, style))

        flush()
        return nodes

    def _parse_block(self, tag: Tag, name: str, parent_style: StyleDescriptor) -> list[ContentNode]:
        style = self.styles.resolve(name, tag.attrs, parent_style)

        if name in HEADING_TAGS:
            level = HEADING_TAGS[name]
            return self._inline_block(tag, style, lambda runs: Heading(level=level, runs=runs, alignment=style.alignment))
        if name == "p":
            return self._inline_block(tag, style, lambda runs: Paragraph(runs=runs, alignment=style.alignment))
        if name == "hr":
            return [Divider()]
        if name in ("ul", "ol"):
            return self._parse_list(tag, parent_style, depth=1)
        if name == "li":
            return self._parse_list_item(tag, parent_style, ordered=False, depth=1)
        if name == "table":
            return self._parse_table(tag, parent_style)
        if name == "pre":
            return [self._parse_code(tag)]
        if name == "blockquote":
            return [Quote(children=self._parse_blocks(tag, style))]
        if name in CONTAINER_TAGS or name in ("thead", "tbody", "tfoot", "tr", "td", "th"):
            return self._parse_blocks(tag, style)

        text = _WHITESPACE.sub(" ", tag.get_text()).strip()
        if not text:
            return []
        log.debug("Unknown element degraded to paragraph", tag=name)
        return [Paragraph(runs=[TextRun(text, **style.run_style())], alignment=style.alignment)]

    def _inline_block(
        self,
        tag: Tag,
        style: StyleDescriptor,
        factory: Callable[[list[Inline]], ContentNode],
    ) -> list[ContentNode]:
        segments: list[Segment] = []
        for child in tag.children:
            self._walk_inline(child, style, segments)
        nodes: list[ContentNode] = []
        self._emit_segments(segments, nodes, factory, default_alignment=style.alignment)
        return nodes

    def _emit_segments(
        self,
        segments: list[Segment],
        nodes: list[ContentNode],
        factory: Callable[[list[Inline]], ContentNode],
        default_alignment=None,
    ) -> None:
        """Split a segment list at images into blocks built by ``factory``."""
        runs: list[Inline] = []
        for segment in segments:
            if isinstance(segment, ImageRef):
                self._emit_runs(runs, nodes, factory)
                runs = []
                if segment.alignment is None:
                    segment.alignment = default_alignment
                nodes.append(segment)
            else:
                runs.append(segment)
        self._emit_runs(runs, nodes, factory)

    @staticmethod
    def _emit_runs(runs: list[Inline], nodes: list[ContentNode], factory) -> None:
        tidy = _tidy_runs(runs)
        if _has_content(tidy):
            nodes.append(factory(tidy))

    # Inline level

    def _walk_inline(self, node, style: StyleDescriptor, out: list[Segment]) -> None:
        if isinstance(node, _SKIPPED_STRINGS):
            return
        if isinstance(node, NavigableString):
            text = _WHITESPACE.sub(" ", str(node))
            if text:
                out.append(TextRun(text, **style.run_style()))
            return
        if not isinstance(node, Tag):
            return

        name = node.name.lower()
        if name == "br":
            out.append(TextRun("\n", **style.run_style()))
            return
        if name == "img":
            image = self._image_ref(node, style)
            if image is not None:
                out.append(image)
            return

        child_style = self.styles.resolve(name, node.attrs, style)

        if name == "a" and node.get("href"):
            inner: list[Segment] = []
            for child in node.children:
                self._walk_inline(child, child_style, inner)
            runs = _tidy_runs([s for s in inner if isinstance(s, TextRun)])
            text = "".join(r.text for r in runs).strip()
            href = str(node["href"])
            if text or not any(isinstance(s, ImageRef) for s in inner):
                out.append(Hyperlink(text=text or href, url=href, runs=runs))
            out.extend(s for s in inner if isinstance(s, ImageRef))
            return

        if name in HEADING_TAGS or name in ("p", "div", "li", "tr"):
            # Block element inside inline context: keep it on its own line
            if out and not (isinstance(out[-1], TextRun) and out[-1].text.endswith("\n")):
                out.append(TextRun("\n", **style.run_style()))

        for child in node.children:
            self._walk_inline(child, child_style, out)

    def _image_ref(self, tag: Tag, style: StyleDescriptor) -> ImageRef | None:
        src = str(tag.get("src") or "").strip()
        if not src:
            log.debug("Image without src skipped")
            return None
        image_style = self.styles.resolve("img", tag.attrs, style)
        return ImageRef(
            src=src,
            width=_dimension(tag.get("width")),
            height=_dimension(tag.get("height")),
            alignment=image_style.alignment,
            alt=str(tag.get("alt") or ""),
        )

    # Structures

    def _parse_list(self, tag: Tag, style: StyleDescriptor, depth: int) -> list[ContentNode]:
        ordered = tag.name.lower() == "ol"
        list_style = self.styles.resolve(tag.name.lower(), tag.attrs, style)
        nodes: list[ContentNode] = []
        for child in tag.children:
            if isinstance(child, Tag):
                name = child.name.lower()
                if name in ("ul", "ol"):
                    nodes.extend(self._parse_list(child, list_style, depth + 1))
                else:
                    nodes.extend(self._parse_list_item(child, list_style, ordered, depth))
            elif isinstance(child, NavigableString) and not isinstance(child, _SKIPPED_STRINGS):
                text = _WHITESPACE.sub(" ", str(child)).strip()
                if text:
                    nodes.append(ListItem(ordered=ordered, depth=depth, runs=[TextRun(text)]))
        return nodes

    def _parse_list_item(self, tag: Tag, style: StyleDescriptor, ordered: bool, depth: int) -> list[ContentNode]:
        item_style = self.styles.resolve(tag.name.lower(), tag.attrs, style)
        nodes: list[ContentNode] = []
        segments: list[Segment] = []

        def factory(runs: list[Inline]) -> ListItem:
            return ListItem(ordered=ordered, depth=depth, runs=runs, alignment=item_style.alignment)

        def flush() -> None:
            self._emit_segments(segments, nodes, factory, default_alignment=item_style.alignment)
            segments.clear()

        for child in tag.children:
            if isinstance(child, Tag):
                name = child.name.lower()
                if name in ("ul", "ol"):
                    flush()
                    nodes.extend(self._parse_list(child, item_style, depth + 1))
                    continue
                if name in ("table", "pre", "blockquote", "hr"):
                    flush()
                    nodes.extend(self._parse_block(child, name, item_style))
                    continue
            self._walk_inline(child, item_style, segments)
        flush()
        return nodes

    def _parse_table(self, tag: Tag, style: StyleDescriptor) -> list[ContentNode]:
        table_style = self.styles.resolve("table", tag.attrs, style)
        rows: list[list[TableCell]] = []

        def row_tags(container: Tag):
            for child in container.children:
                if not isinstance(child, Tag):
                    continue
                name = child.name.lower()
                if name == "tr":
                    yield child
                elif name in ("thead", "tbody", "tfoot"):
                    yield from row_tags(child)

        for tr in row_tags(tag):
            row_style = self.styles.resolve("tr", tr.attrs, table_style)
            cells: list[TableCell] = []
            for cell in tr.children:
                if not isinstance(cell, Tag) or cell.name.lower() not in ("td", "th"):
                    continue
                cell_style = self.styles.resolve(cell.name.lower(), cell.attrs, row_style)
                cells.append(
                    TableCell(
                        nodes=self._parse_blocks(cell, cell_style),
                        header=cell.name.lower() == "th",
                        colspan=_span(cell.get("colspan", 1)),
                        rowspan=_span(cell.get("rowspan", 1)),
                        alignment=cell_style.alignment,
                    )
                )
            if cells:
                rows.append(cells)

        if rows:
            return [Table(rows=rows)]

        # A table without rows keeps whatever text it had
        return self._parse_blocks(tag, table_style)

    def _parse_code(self, tag: Tag) -> CodeBlock:
        text = tag.get_text()
        if text.startswith("\r\n"):
            text = text[2:]
        elif text.startswith("\n"):
            text = text[1:]
        return CodeBlock(text=text.rstrip("\r\n"), language=_code_language(tag))


_default_parser = MarkupParser()


def parse(markup: str | None) -> ContentTree:
    """Parse markup into a content tree with the default style resolver."""
    return _default_parser.parse(markup)
