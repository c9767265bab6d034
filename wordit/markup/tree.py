"""Content tree: the format-agnostic model between parsing and assembly."""

from collections.abc import Iterator
from dataclasses import dataclass, field, fields
from typing import Literal, Union

Alignment = Literal["left", "center", "right", "justify"]


@dataclass
class TextRun:
    """A span of text sharing one inline style."""

    text: str
    bold: bool | None = None  # None inherits from the enclosing block
    italic: bool | None = None
    underline: bool = False
    strikethrough: bool = False
    color: str | None = None  # RRGGBB
    background: str | None = None  # RRGGBB
    font: str | None = None
    size: float | None = None  # points

    def same_style(self, other: "TextRun") -> bool:
        """Check whether two runs carry identical style flags."""
        return all(
            getattr(self, f.name) == getattr(other, f.name) for f in fields(self) if f.name != "text"
        )


@dataclass
class Hyperlink:
    """A clickable link; block-level or inline inside a run list."""

    text: str
    url: str
    runs: list[TextRun] = field(default_factory=list)

    @property
    def display_runs(self) -> list[TextRun]:
        return self.runs or [TextRun(self.text)]


Inline = Union[TextRun, Hyperlink]


@dataclass
class Heading:
    level: int
    runs: list[Inline] = field(default_factory=list)
    alignment: Alignment | None = None

    @property
    def text(self) -> str:
        return inline_text(self.runs)


@dataclass
class Paragraph:
    runs: list[Inline] = field(default_factory=list)
    alignment: Alignment | None = None

    @property
    def text(self) -> str:
        return inline_text(self.runs)


@dataclass
class ListItem:
    ordered: bool
    depth: int  # 1 for top-level items
    runs: list[Inline] = field(default_factory=list)
    alignment: Alignment | None = None

    @property
    def text(self) -> str:
        return inline_text(self.runs)


@dataclass
class TableCell:
    nodes: list["ContentNode"] = field(default_factory=list)
    header: bool = False
    colspan: int = 1
    rowspan: int = 1
    alignment: Alignment | None = None


@dataclass
class CellPlacement:
    """Where a cell lands on the table grid and the area it covers."""

    row: int
    column: int
    rowspan: int
    colspan: int
    cell: TableCell


@dataclass
class Table:
    rows: list[list[TableCell]] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return max((p.column + p.colspan for p in self.placements()), default=0)

    def placements(self) -> list[CellPlacement]:
        """Lay the cells out on a grid.

        A cell takes the first column its row does not already cover from a
        row span above. Spans are clipped to the last row and stop before a
        covered slot, so no two placements overlap.
        """
        covered: set[tuple[int, int]] = set()
        result: list[CellPlacement] = []
        for row_index, row in enumerate(self.rows):
            column = 0
            for cell in row:
                while (row_index, column) in covered:
                    column += 1
                colspan = 1
                while colspan < cell.colspan and (row_index, column + colspan) not in covered:
                    colspan += 1
                rowspan = max(1, min(cell.rowspan, len(self.rows) - row_index))
                for r in range(row_index, row_index + rowspan):
                    for c in range(column, column + colspan):
                        covered.add((r, c))
                result.append(CellPlacement(row_index, column, rowspan, colspan, cell))
                column += colspan
        return result


@dataclass
class CodeBlock:
    text: str
    language: str | None = None


@dataclass
class Quote:
    children: list["ContentNode"] = field(default_factory=list)


@dataclass
class Divider:
    pass


@dataclass
class ImageRef:
    src: str
    width: int | None = None
    height: int | None = None
    alignment: Alignment | None = None
    alt: str = ""


ContentNode = Union[
    Heading, Paragraph, ListItem, Table, CodeBlock, Quote, Divider, ImageRef, Hyperlink
]


@dataclass
class ContentTree:
    """Ordered top-level content nodes of one document."""

    nodes: list[ContentNode] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def walk(self) -> Iterator[ContentNode]:
        """Yield every node depth-first in document order."""
        return iter_nodes(self.nodes)

    def image_refs(self) -> list[ImageRef]:
        return list(iter_image_refs(self.nodes))


def inline_text(runs: list[Inline]) -> str:
    return "".join(r.text for r in runs)


def iter_nodes(nodes: list[ContentNode]) -> Iterator[ContentNode]:
    for node in nodes:
        yield node
        if isinstance(node, Quote):
            yield from iter_nodes(node.children)
        elif isinstance(node, Table):
            for row in node.rows:
                for cell in row:
                    yield from iter_nodes(cell.nodes)


def iter_image_refs(nodes: list[ContentNode]) -> Iterator[ImageRef]:
    for node in iter_nodes(nodes):
        if isinstance(node, ImageRef):
            yield node
