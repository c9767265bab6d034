"""Word document assembly with python-docx.

Walks a content tree once, depth first, in document order and emits the
matching paragraphs, runs, tables and pictures. Images are matched back to
their nodes by reference, so the order jobs finished in does not matter.
Images that failed are skipped and recorded in the ``AssemblyReport``.
"""

import io
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Inches, Pt, RGBColor
from docx.text.paragraph import Paragraph as DocxParagraph

from wordit.config.constants import (
    DEFAULT_MAX_IMAGE_HEIGHT_IN,
    DEFAULT_MAX_IMAGE_WIDTH_IN,
    PIXELS_PER_INCH,
)
from wordit.config.settings import DocumentConfig
from wordit.image.jobs import ImageJob, ResolvedImage
from wordit.markup.styles import StyleDescriptor, resolve_style
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

_ALIGNMENT = {
    "left": WD_ALIGN_PARAGRAPH.LEFT,
    "center": WD_ALIGN_PARAGRAPH.CENTER,
    "right": WD_ALIGN_PARAGRAPH.RIGHT,
    "justify": WD_ALIGN_PARAGRAPH.JUSTIFY,
}

HYPERLINK_COLOR = "0563C1"
CODE_SHADING = "F2F2F2"
QUOTE_INDENT_INCHES = 0.5
LIST_INDENT_INCHES = 0.25
MAX_LIST_STYLE_LEVEL = 3

# pPr children that must follow w:pBdr / w:shd
_PPR_AFTER_BORDER = (
    "w:shd", "w:tabs", "w:suppressAutoHyphens", "w:kinsoku", "w:wordWrap", "w:overflowPunct",
    "w:topLinePunct", "w:autoSpaceDE", "w:autoSpaceDN", "w:bidi", "w:adjustRightInd",
    "w:snapToGrid", "w:spacing", "w:ind", "w:contextualSpacing", "w:mirrorIndents",
    "w:suppressOverlap", "w:jc", "w:textDirection", "w:textAlignment", "w:textboxTightWrap",
    "w:outlineLvl", "w:divId", "w:cnfStyle", "w:rPr", "w:sectPr", "w:pPrChange",
)  # fmt: skip
_PPR_AFTER_SHADING = _PPR_AFTER_BORDER[1:]

ImageSource = ImageJob | ResolvedImage | None
StyleFunction = Callable[[Any, Sequence[StyleDescriptor]], StyleDescriptor]


@dataclass
class AssemblyReport:
    """What the assembler rendered and what it had to skip."""

    nodes: int = 0
    embedded_images: int = 0
    skipped_images: list[tuple[str, str]] = field(default_factory=list)  # (url, reason)
    placeholder: bool = False

    def skip_image(self, url: str, reason: str) -> None:
        self.skipped_images.append((url, reason))


def image_extent(
    ref: ImageRef,
    image: ResolvedImage,
    default_size: tuple[int, int],
    max_inches: tuple[float, float],
) -> tuple[float, float]:
    """Display size in inches, preserving aspect ratio within the bounds.

    Declared dimensions win; a single declared side is completed from the
    image's aspect ratio. Without either, the intrinsic size is used, and
    the configured default when the image reports none.
    """
    natural_w, natural_h = image.width, image.height
    width, height = ref.width, ref.height

    if width and not height:
        height = round(width * natural_h / natural_w) if natural_w and natural_h else default_size[1]
    elif height and not width:
        width = round(height * natural_w / natural_h) if natural_w and natural_h else default_size[0]
    elif not width and not height:
        width, height = (natural_w, natural_h) if natural_w and natural_h else default_size

    width_in = width / PIXELS_PER_INCH
    height_in = height / PIXELS_PER_INCH
    scale = min(1.0, max_inches[0] / width_in, max_inches[1] / height_in)
    return width_in * scale, height_in * scale


def _has_content(paragraph: DocxParagraph) -> bool:
    return any(child.tag != qn("w:pPr") for child in paragraph._p)


class DocumentAssembler:
    """Build ``.docx`` bytes from a content tree and resolved images."""

    def __init__(
        self,
        config: DocumentConfig | None = None,
        max_width_inches: float = DEFAULT_MAX_IMAGE_WIDTH_IN,
        max_height_inches: float = DEFAULT_MAX_IMAGE_HEIGHT_IN,
        style_resolver: StyleFunction = resolve_style,
    ) -> None:
        self.config = config or DocumentConfig()
        self.max_inches = (max_width_inches, max_height_inches)
        self.resolve_style = style_resolver

    def assemble(
        self,
        tree: ContentTree,
        images: Mapping[str, ImageSource] | None = None,
        title: str = "",
    ) -> bytes:
        """Assemble a document and return its serialized bytes."""
        data, _ = self.assemble_with_report(tree, images, title=title)
        return data

    def assemble_with_report(
        self,
        tree: ContentTree,
        images: Mapping[str, ImageSource] | None = None,
        title: str = "",
    ) -> tuple[bytes, AssemblyReport]:
        """Assemble a document.

        Args:
            tree: Parsed document content
            images: Resolved image jobs (or payloads) keyed by reference URL
            title: Document title; the only content of an empty document

        Returns:
            Tuple of (docx bytes, assembly report)
        """
        report = AssemblyReport()
        doc = Document()
        self._apply_metadata(doc, title)

        if tree.is_empty:
            doc.add_heading(title or "Untitled", level=0)
            report.placeholder = True
        else:
            builder = _Builder(self, images or {}, report)
            builder.add_nodes(doc, tree.nodes, ())

        buffer = io.BytesIO()
        doc.save(buffer)
        data = buffer.getvalue()

        log.info(
            "Document assembled",
            nodes=report.nodes,
            embedded_images=report.embedded_images,
            skipped_images=len(report.skipped_images),
            placeholder=report.placeholder,
            size=len(data),
        )
        return data, report

    def _apply_metadata(self, doc: Any, title: str) -> None:
        props = doc.core_properties
        props.title = title or ""
        props.author = self.config.author
        props.last_modified_by = self.config.author
        props.comments = self.config.description or ""
        props.revision = 1
        if self.config.body_font:
            doc.styles["Normal"].font.name = self.config.body_font


class _Builder:
    """Per-call assembly state."""

    def __init__(self, assembler: DocumentAssembler, images: Mapping[str, ImageSource], report: AssemblyReport):
        self.assembler = assembler
        self.config = assembler.config
        self.images = images
        self.report = report

    def add_nodes(self, container: Any, nodes: Sequence[ContentNode], ancestors: tuple[StyleDescriptor, ...]) -> None:
        for node in nodes:
            try:
                self.add_node(container, node, ancestors)
            except Exception as e:
                # One bad node must not cost the whole document
                log.warning("Node could not be rendered", node=type(node).__name__, error=str(e))

    def add_node(self, container: Any, node: ContentNode, ancestors: tuple[StyleDescriptor, ...]) -> None:
        style = self.assembler.resolve_style(node, ancestors)
        self.report.nodes += 1

        if isinstance(node, Heading):
            paragraph = self._paragraph(container, f"Heading {min(max(node.level, 1), 9)}", style)
            self._add_runs(paragraph, node.runs, style)
        elif isinstance(node, Paragraph):
            paragraph = self._paragraph(container, None, style)
            self._add_runs(paragraph, node.runs, style)
        elif isinstance(node, ListItem):
            self._add_list_item(container, node, style)
        elif isinstance(node, Table):
            self._add_table(container, node, ancestors)
        elif isinstance(node, CodeBlock):
            self._add_code(container, node, style)
        elif isinstance(node, Quote):
            self.add_nodes(container, node.children, ancestors + (style,))
        elif isinstance(node, Divider):
            self._add_divider(container)
        elif isinstance(node, ImageRef):
            self._add_image(container, node, style)
        elif isinstance(node, Hyperlink):
            paragraph = self._paragraph(container, None, style)
            self._add_hyperlink(paragraph, node, style)
        else:
            log.warning("Unknown content node skipped", node=type(node).__name__)

    # Paragraph helpers

    def _paragraph(self, container: Any, style_name: str | None, style: StyleDescriptor) -> DocxParagraph:
        paragraph = self._reuse_empty_first(container)
        if paragraph is None:
            paragraph = container.add_paragraph()
        if style_name:
            try:
                paragraph.style = style_name
            except KeyError:
                log.debug("Style not in template", style=style_name)
        if style.alignment:
            paragraph.alignment = _ALIGNMENT[style.alignment]
        if style.indent:
            paragraph.paragraph_format.left_indent = Inches(QUOTE_INDENT_INCHES * style.indent)
        return paragraph

    @staticmethod
    def _reuse_empty_first(container: Any) -> DocxParagraph | None:
        """New table cells start with an empty paragraph; fill it first."""
        if not hasattr(container, "_tc"):
            return None
        blocks = container._tc.xpath("./w:p | ./w:tbl")
        if len(blocks) == 1 and blocks[0].tag == qn("w:p"):
            paragraph = container.paragraphs[0]
            if not _has_content(paragraph):
                return paragraph
        return None

    def _add_runs(self, paragraph: DocxParagraph, runs: Sequence[Inline], base: StyleDescriptor) -> None:
        for run in runs:
            if isinstance(run, Hyperlink):
                self._add_hyperlink(paragraph, run, base)
            else:
                self._add_text_run(paragraph, run, base)

    def _add_text_run(self, paragraph: DocxParagraph, text_run: TextRun, base: StyleDescriptor, link: bool = False):
        run = paragraph.add_run(text_run.text)
        font = run.font
        # An explicit run weight wins over the block's; None leaves the paragraph style
        bold = base.bold if text_run.bold is None else text_run.bold
        if bold is not None:
            run.bold = bold
        italic = base.italic if text_run.italic is None else text_run.italic
        if italic is not None:
            run.italic = italic
        if text_run.underline or link:
            run.underline = True
        if text_run.strikethrough:
            font.strike = True
        color = text_run.color or (HYPERLINK_COLOR if link else None)
        if color:
            font.color.rgb = RGBColor.from_string(color)
        if text_run.font or base.font:
            font.name = text_run.font or base.font
        if text_run.size:
            font.size = Pt(text_run.size)
        if text_run.background:
            # w:shd sorts after every rPr child set above
            shading = OxmlElement("w:shd")
            shading.set(qn("w:val"), "clear")
            shading.set(qn("w:color"), "auto")
            shading.set(qn("w:fill"), text_run.background)
            run._r.get_or_add_rPr().append(shading)
        return run

    def _add_hyperlink(self, paragraph: DocxParagraph, link: Hyperlink, base: StyleDescriptor) -> None:
        r_id = paragraph.part.relate_to(link.url, RT.HYPERLINK, is_external=True)
        hyperlink = OxmlElement("w:hyperlink")
        hyperlink.set(qn("r:id"), r_id)
        paragraph._p.append(hyperlink)
        for text_run in link.display_runs:
            run = self._add_text_run(paragraph, text_run, base, link=True)
            hyperlink.append(run._r)

    # Blocks

    def _add_list_item(self, container: Any, item: ListItem, style: StyleDescriptor) -> None:
        base = "List Number" if item.ordered else "List Bullet"
        level = min(max(item.depth, 1), MAX_LIST_STYLE_LEVEL)
        style_name = base if level == 1 else f"{base} {level}"
        paragraph = self._paragraph(container, style_name, style)
        if item.depth > MAX_LIST_STYLE_LEVEL or style.indent:
            paragraph.paragraph_format.left_indent = Inches(
                QUOTE_INDENT_INCHES * style.indent + LIST_INDENT_INCHES * item.depth
            )
        self._add_runs(paragraph, item.runs, style)

    def _add_code(self, container: Any, block: CodeBlock, style: StyleDescriptor) -> None:
        paragraph = self._paragraph(container, None, style)
        lines = block.text.split("\n")
        for index, line in enumerate(lines):
            run = paragraph.add_run(line.rstrip("\r"))
            run.font.name = self.config.code_font
            run.font.size = Pt(10)
            if index < len(lines) - 1:
                run.add_break()
        self._set_paragraph_shading(paragraph, CODE_SHADING)

    def _add_divider(self, container: Any) -> None:
        paragraph = self._reuse_empty_first(container) or container.add_paragraph()
        border = OxmlElement("w:pBdr")
        bottom = OxmlElement("w:bottom")
        bottom.set(qn("w:val"), "single")
        bottom.set(qn("w:sz"), "6")
        bottom.set(qn("w:space"), "1")
        bottom.set(qn("w:color"), "auto")
        border.append(bottom)
        paragraph._p.get_or_add_pPr().insert_element_before(border, *_PPR_AFTER_BORDER)

    @staticmethod
    def _set_paragraph_shading(paragraph: DocxParagraph, fill: str) -> None:
        shading = OxmlElement("w:shd")
        shading.set(qn("w:val"), "clear")
        shading.set(qn("w:color"), "auto")
        shading.set(qn("w:fill"), fill)
        paragraph._p.get_or_add_pPr().insert_element_before(shading, *_PPR_AFTER_SHADING)

    def _add_table(self, container: Any, table: Table, ancestors: tuple[StyleDescriptor, ...]) -> None:
        columns = table.column_count
        if not table.rows or columns == 0:
            return

        docx_table = container.add_table(rows=len(table.rows), cols=columns)
        try:
            docx_table.style = "Table Grid"
        except KeyError:
            log.debug("Style not in template", style="Table Grid")

        for placement in table.placements():
            target = docx_table.cell(placement.row, placement.column)
            if placement.rowspan > 1 or placement.colspan > 1:
                corner = docx_table.cell(
                    placement.row + placement.rowspan - 1,
                    placement.column + placement.colspan - 1,
                )
                target = target.merge(corner)
            self._fill_cell(target, placement.cell, ancestors)

    def _fill_cell(self, target: Any, cell: TableCell, ancestors: tuple[StyleDescriptor, ...]) -> None:
        cell_style = self.assembler.resolve_style(cell, ancestors)
        self.add_nodes(target, cell.nodes, ancestors + (cell_style,))

    def _add_image(self, container: Any, ref: ImageRef, style: StyleDescriptor) -> None:
        source = self.images.get(ref.src)
        image: ResolvedImage | None
        if isinstance(source, ImageJob):
            image = source.image if source.embedded else None
            reason = source.failure_reason or source.state.value
        else:
            image = source
            reason = "unresolved"

        if image is None:
            log.debug("Skipping unresolved image", url=ref.src[:120], reason=reason)
            self.report.skip_image(ref.src, reason)
            return

        width_in, height_in = image_extent(
            ref,
            image,
            (self.config.default_image_width, self.config.default_image_height),
            self.assembler.max_inches,
        )
        paragraph = self._paragraph(container, None, style)
        run = paragraph.add_run()
        try:
            run.add_picture(io.BytesIO(image.data), width=Inches(width_in), height=Inches(height_in))
        except Exception as e:
            run._r.getparent().remove(run._r)
            log.warning("Image could not be embedded", url=ref.src[:120], error=str(e))
            self.report.skip_image(ref.src, f"embed failed: {e}")
            return
        self.report.embedded_images += 1
