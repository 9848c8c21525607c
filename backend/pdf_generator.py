"""
PDF Generator for the FOR-ATA-057 inspection report.

Builds the export document from a ReportModel and its MatrixLayout with
ReportLab. Every cell string comes from the layout, so the export shows the
same text as the preview.

PDF Structure:
1. Header band (drawn on every page) - logo, title, code/version/issue date
2. Metadata line - inspection date and inspector
3. Mark legend and checklist matrix with per-row signature images
4. Legend / note paragraphs
5. Observations table
6. Signatures block (moved to a new page when it does not fit)
7. Footer note

Design Principles:
- Deterministic: same model and images always produce the same structure
- Degrading: a missing or broken image leaves an empty box, never an error
- Complete: the full document is returned as bytes, nothing is streamed
"""

import logging
from io import BytesIO
from typing import Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY, TA_LEFT
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont, TTFError
from reportlab.platypus import (
    CondPageBreak,
    Flowable,
    Image,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

import config
from matrix_layout import (
    CHECK_MARK,
    HEADER_BAND_LABELS,
    LOGO_PLACEHOLDER,
    EquipmentRow,
    HeaderMode,
    LegendRow,
    MatrixLayout,
    ObservationRow,
    RowKind,
)
from report_model import ReportModel
from signature_loader import NO_IMAGES, LoadedImage, ReportImages

logger = logging.getLogger(__name__)

# =============================================================================
# STYLING CONSTANTS
# =============================================================================

PAGE_SIZE = landscape(A4)
SIDE_MARGIN = 0.4 * inch
BAND_TOP = 0.3 * inch
BAND_HEIGHT = 48
BAND_GAP = 8
BOTTOM_MARGIN = 0.5 * inch

PRIMARY = colors.HexColor("#093071")
HEADER_BG = colors.HexColor("#002060")
OBS_HEADER_BG = colors.HexColor("#E7E6E6")
PLACEHOLDER_TEXT = colors.HexColor("#8c8c8c")

EQUIPMENT_ROW_HEIGHT = 14
SIGNATURE_BOX_HEIGHT = 42
CHECK_GLYPH = "3"  # ZapfDingbats a19


class _Fonts:
    """Font names for one document; a custom TTF also covers the checkmark glyph."""

    def __init__(self, regular: str = "Helvetica", bold: str = "Helvetica-Bold", has_check: bool = False):
        self.regular = regular
        self.bold = bold
        self.has_check = has_check


def _register_fonts() -> _Fonts:
    path = config.REPORT_FONT_PATH
    if not path:
        return _Fonts()
    try:
        if "ReportFont" not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont("ReportFont", path))
            # <b> in paragraphs needs a family mapping even with a single face
            pdfmetrics.registerFontFamily("ReportFont", normal="ReportFont", bold="ReportFont",
                                          italic="ReportFont", boldItalic="ReportFont")
        return _Fonts(regular="ReportFont", bold="ReportFont", has_check=True)
    except (TTFError, OSError) as e:
        logger.warning(f"Could not register report font {path}: {e}; using Helvetica")
        return _Fonts()


def _get_styles(fonts: _Fonts) -> Dict[str, ParagraphStyle]:
    """Create consistent paragraph styles for the PDF."""
    base = getSampleStyleSheet()

    return {
        "band_title": ParagraphStyle(
            "BandTitle",
            parent=base["Normal"],
            fontName=fonts.bold,
            fontSize=11,
            leading=13,
            textColor=PRIMARY,
            alignment=TA_CENTER,
        ),
        "body": ParagraphStyle(
            "Body",
            parent=base["Normal"],
            fontName=fonts.regular,
            fontSize=7,
            leading=8.5,
        ),
        "legend": ParagraphStyle(
            "Legend",
            parent=base["Normal"],
            fontName=fonts.regular,
            fontSize=6.5,
            leading=8,
            alignment=TA_JUSTIFY,
        ),
        "matrix_header": ParagraphStyle(
            "MatrixHeader",
            parent=base["Normal"],
            fontName=fonts.bold,
            fontSize=6.5,
            leading=7.5,
            textColor=colors.white,
            alignment=TA_CENTER,
        ),
        "matrix_item": ParagraphStyle(
            "MatrixItem",
            parent=base["Normal"],
            fontName=fonts.regular,
            fontSize=4.5,
            leading=5.2,
            textColor=colors.white,
            alignment=TA_CENTER,
        ),
        "obs_header": ParagraphStyle(
            "ObsHeader",
            parent=base["Normal"],
            fontName=fonts.bold,
            fontSize=7,
            leading=8.5,
            alignment=TA_CENTER,
        ),
        "table_cell": ParagraphStyle(
            "TableCell",
            parent=base["Normal"],
            fontName=fonts.regular,
            fontSize=6.5,
            leading=8,
            alignment=TA_LEFT,
        ),
        "signature": ParagraphStyle(
            "Signature",
            parent=base["Normal"],
            fontName=fonts.regular,
            fontSize=7,
            leading=9,
            alignment=TA_CENTER,
        ),
        "caption": ParagraphStyle(
            "Caption",
            parent=base["Normal"],
            fontName=fonts.bold,
            fontSize=7,
            leading=9,
            alignment=TA_CENTER,
        ),
        "footer": ParagraphStyle(
            "Footer",
            parent=base["Normal"],
            fontName=fonts.regular,
            fontSize=6,
            leading=7.5,
            alignment=TA_JUSTIFY,
        ),
    }


# =============================================================================
# FLOWABLES
# =============================================================================

class MarkGlyph(Flowable):
    """Checkmark drawn from ZapfDingbats when the text font has no such glyph."""

    def __init__(self, mark: str, size: float = 7):
        Flowable.__init__(self)
        self.mark = mark
        self.size = size

    def wrap(self, availWidth, availHeight):
        return self.size * 0.85, self.size

    def draw(self):
        self.canv.setFont("ZapfDingbats", self.size)
        self.canv.drawString(0, self.size * 0.15, CHECK_GLYPH)


class EmptyBox(Flowable):
    """Blank rectangle standing in for a missing signature image."""

    def __init__(self, width: float, height: float, stroke: bool = True):
        Flowable.__init__(self)
        self.width = width
        self.height = height
        self.stroke = stroke

    def wrap(self, availWidth, availHeight):
        return self.width, self.height

    def draw(self):
        if self.stroke:
            self.canv.setStrokeColor(colors.lightgrey)
            self.canv.setLineWidth(0.5)
            self.canv.rect(0, 0, self.width, self.height, stroke=1, fill=0)


def _image_flowable(image: LoadedImage, max_width: float, max_height: float) -> Image:
    w, h = image.fit(max_width, max_height)
    return Image(BytesIO(image.data), width=w, height=h)


def _paragraph_lines(lines) -> str:
    """Markup lines to ReportLab paragraph markup."""
    rendered = []
    for line in lines:
        parts = [f"<b>{escape(text)}</b>" if bold else escape(text) for text, bold in line]
        rendered.append("".join(parts))
    return "<br/>".join(rendered)


def _multiline(text: str) -> str:
    return "<br/>".join(escape(part) for part in (text or "").split("\n"))


# =============================================================================
# SECTIONS
# =============================================================================

def _build_metadata_line(layout: MatrixLayout, fonts: _Fonts, width: float) -> List:
    """Build the date / inspector line under the header band."""
    cells = list(layout.metadata_cells) or ["", "", "", ""]
    table = Table([cells], colWidths=[0.6*inch, 1.4*inch, 2.3*inch, width - 4.3*inch])
    table.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, -1), fonts.regular),
        ("FONTNAME", (0, 0), (0, 0), fonts.bold),
        ("FONTNAME", (2, 0), (2, 0), fonts.bold),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("LINEBELOW", (1, 0), (1, 0), 0.5, colors.black),
        ("LINEBELOW", (3, 0), (3, 0), 0.5, colors.black),
        ("LEFTPADDING", (0, 0), (-1, -1), 2),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
        ("TOPPADDING", (0, 0), (-1, -1), 2),
    ]))
    return [table, Spacer(1, 3)]


def _build_mark_legend(layout: MatrixLayout, styles: Dict) -> List:
    text = "<br/>".join(escape(line) for line in layout.mark_legend)
    return [Paragraph(text, styles["body"]), Spacer(1, 3)]


def _mark_cell(mark: str, fonts: _Fonts):
    if mark == CHECK_MARK and not fonts.has_check:
        return MarkGlyph(mark)
    return mark


def _build_matrix(rows: List[EquipmentRow], layout: MatrixLayout, images: ReportImages,
                  styles: Dict, fonts: _Fonts, width: float) -> Table:
    """Build the checklist matrix: header row plus one row per equipment row."""
    col_widths = [w * width for w in layout.column_widths]
    last = len(col_widths) - 1

    header = []
    for idx, text in enumerate(layout.header_cells):
        is_item = 1 < idx < last
        style = styles["matrix_item"] if is_item and layout.header_mode is HeaderMode.TEXT else styles["matrix_header"]
        header.append(Paragraph(escape(text), style))

    table_data = [header]
    style_commands = [
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BG),
        ("FONTNAME", (0, 1), (-1, -1), fonts.regular),
        ("FONTSIZE", (0, 1), (-1, -1), 6.5),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ("TOPPADDING", (0, 0), (-1, -1), 1),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 1),
        ("LEFTPADDING", (0, 0), (-1, -1), 1),
        ("RIGHTPADDING", (0, 0), (-1, -1), 1),
    ]

    for r, row in enumerate(rows, start=1):
        cells = [row.code, row.hour] + [_mark_cell(m, fonts) for m in row.marks]
        image = images.for_row(row.index)
        if image is not None:
            cells.append(_image_flowable(image, col_widths[-1] - 4, EQUIPMENT_ROW_HEIGHT - 2))
        else:
            cells.append("")
        table_data.append(cells)
        if row.placeholder:
            style_commands.append(("TEXTCOLOR", (0, r), (0, r), PLACEHOLDER_TEXT))

    row_heights = [None] + [EQUIPMENT_ROW_HEIGHT] * len(rows)
    # Splits with a repeated header if the rows ever outgrow one page
    matrix = Table(table_data, colWidths=col_widths, rowHeights=row_heights, repeatRows=1)
    matrix.setStyle(TableStyle(style_commands))
    return matrix


def _build_legend(row: LegendRow, styles: Dict) -> List:
    return [Spacer(1, 3), Paragraph(_paragraph_lines(row.lines), styles["legend"])]


def _build_observations(header, rows: List[ObservationRow], layout: MatrixLayout,
                        styles: Dict, fonts: _Fonts, width: float) -> Table:
    """Build the observations table (code / operator / maintenance)."""
    code_w = (layout.column_widths[0] + layout.column_widths[1]) * width
    text_w = (width - code_w) / 2
    col_widths = [code_w, text_w, text_w]

    table_data = [[Paragraph(escape(h), styles["obs_header"]) for h in header.cells]]
    style_commands = [
        ("BACKGROUND", (0, 0), (-1, 0), OBS_HEADER_BG),
        ("FONTNAME", (0, 1), (0, -1), fonts.regular),
        ("FONTSIZE", (0, 1), (0, -1), 6.5),
        ("ALIGN", (0, 0), (0, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ("TOPPADDING", (0, 0), (-1, -1), 2),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
    ]
    for r, row in enumerate(rows, start=1):
        table_data.append([
            row.code,
            Paragraph(escape(row.operator_text), styles["table_cell"]),
            Paragraph(escape(row.maintenance_text), styles["table_cell"]),
        ])
        if row.placeholder:
            style_commands.append(("TEXTCOLOR", (0, r), (0, r), PLACEHOLDER_TEXT))

    table = Table(table_data, colWidths=col_widths, repeatRows=1)
    table.setStyle(TableStyle(style_commands))
    return table


def _build_signatures(layout: MatrixLayout, images: ReportImages, styles: Dict, width: float) -> Table:
    """Build the supervisor / mechanic block: image or empty box, name, date, caption."""
    block_w = width * 0.35
    columns = []
    for sign_off in layout.sign_offs:
        image = images.for_role(sign_off.role)
        if image is not None:
            picture = _image_flowable(image, block_w - 20, SIGNATURE_BOX_HEIGHT)
        else:
            picture = EmptyBox(block_w - 20, SIGNATURE_BOX_HEIGHT)
        columns.append([
            picture,
            Paragraph(escape(sign_off.name), styles["signature"]),
            Paragraph(escape(sign_off.signed_at), styles["signature"]),
            Paragraph(_multiline(sign_off.caption), styles["caption"]),
        ])

    table = Table([columns], colWidths=[block_w] * len(columns), hAlign="CENTER")
    table.setStyle(TableStyle([
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "BOTTOM"),
        ("LEFTPADDING", (0, 0), (-1, -1), 10),
        ("RIGHTPADDING", (0, 0), (-1, -1), 10),
    ]))
    return table


def _build_story(model: ReportModel, layout: MatrixLayout, images: ReportImages,
                 styles: Dict, fonts: _Fonts, width: float, height: float) -> List:
    """Walk the layout rows in order and turn them into flowables."""
    elements = []
    elements.extend(_build_metadata_line(layout, fonts, width))
    elements.extend(_build_mark_legend(layout, styles))

    # Equipment rows always lead the body; the matrix keeps its header even when empty
    elements.append(_build_matrix(list(layout.equipment_rows), layout, images, styles, fonts, width))

    observations: List[ObservationRow] = []
    obs_header = None
    for row in layout.body_rows:
        if row.kind is RowKind.EQUIPMENT:
            continue
        if row.kind is RowKind.LEGEND:
            elements.extend(_build_legend(row, styles))
        elif row.kind is RowKind.SPACER:
            elements.append(Spacer(1, 6))
        elif row.kind is RowKind.OBSERVATION_HEADER:
            obs_header = row
        elif row.kind is RowKind.OBSERVATION:
            observations.append(row)

    if obs_header is not None:
        elements.append(_build_observations(obs_header, observations, layout, styles, fonts, width))

    signatures = _build_signatures(layout, images, styles, width)
    _, sig_height = signatures.wrap(width, height)
    elements.append(CondPageBreak(sig_height + 12))
    elements.append(Spacer(1, 10))
    elements.append(signatures)

    footer = layout.legend_row("footer")
    if footer is not None:
        elements.append(Spacer(1, 6))
        elements.append(Paragraph(_paragraph_lines(footer.lines), styles["footer"]))
    return elements


# =============================================================================
# PAGE DECORATION
# =============================================================================

def _header_band_painter(model: ReportModel, images: ReportImages, styles: Dict, fonts: _Fonts):
    """Return the page callback drawing the header band and the page number."""
    logo_reader = ImageReader(BytesIO(images.logo.data)) if images.logo else None
    band_values = (model.form_code, model.form_version, model.form_issue_date)

    def draw(canvas, doc):
        page_w, page_h = doc.pagesize
        x0 = doc.leftMargin
        width = doc.width
        top = page_h - BAND_TOP
        y0 = top - BAND_HEIGHT
        logo_w = width * 0.18
        meta_w = width * 0.20
        title_w = width - logo_w - meta_w
        meta_x = x0 + logo_w + title_w

        canvas.saveState()
        canvas.setStrokeColor(colors.black)
        canvas.setLineWidth(0.8)
        canvas.rect(x0, y0, width, BAND_HEIGHT, stroke=1, fill=0)
        canvas.line(x0 + logo_w, y0, x0 + logo_w, top)
        canvas.line(meta_x, y0, meta_x, top)

        if logo_reader is not None:
            w, h = images.logo.fit(logo_w - 8, BAND_HEIGHT - 8)
            canvas.drawImage(logo_reader, x0 + (logo_w - w) / 2, y0 + (BAND_HEIGHT - h) / 2,
                             width=w, height=h, mask="auto")
        else:
            canvas.setFont(fonts.bold, 12)
            canvas.setFillColor(PRIMARY)
            canvas.drawCentredString(x0 + logo_w / 2, y0 + BAND_HEIGHT / 2 - 4, LOGO_PLACEHOLDER)

        title = Paragraph(escape(model.form_title), styles["band_title"])
        _, th = title.wrap(title_w - 10, BAND_HEIGHT)
        title.drawOn(canvas, x0 + logo_w + 5, y0 + (BAND_HEIGHT - th) / 2)

        row_h = BAND_HEIGHT / 3
        canvas.setFillColor(colors.black)
        canvas.setFont(fonts.regular, 7)
        for i, (label, value) in enumerate(zip(HEADER_BAND_LABELS, band_values)):
            row_top = top - i * row_h
            if i:
                canvas.line(meta_x, row_top, x0 + width, row_top)
            canvas.drawString(meta_x + 4, row_top - row_h / 2 - 2.5, f"{label} {value}")

        canvas.setFont(fonts.regular, 7)
        canvas.setFillColor(colors.gray)
        canvas.drawCentredString(page_w / 2, BOTTOM_MARGIN / 2, f"Página {canvas.getPageNumber()}")
        canvas.restoreState()

    return draw


# =============================================================================
# MAIN GENERATOR
# =============================================================================

def generate_report_pdf(model: ReportModel, layout: MatrixLayout,
                        images: Optional[ReportImages] = None) -> bytes:
    """
    Generate the FOR-ATA-057 export document.

    Args:
        model: The report model
        layout: Matrix layout built from the same model
        images: Pre-loaded images; omitted means every image is an empty box

    Returns:
        PDF file contents as bytes
    """
    images = images or NO_IMAGES
    fonts = _register_fonts()
    styles = _get_styles(fonts)

    # Build PDF in memory
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=PAGE_SIZE,
        rightMargin=SIDE_MARGIN,
        leftMargin=SIDE_MARGIN,
        topMargin=BAND_TOP + BAND_HEIGHT + BAND_GAP,
        bottomMargin=BOTTOM_MARGIN,
        title=f"{model.form_code} - {model.station}",
        author="FOR-ATA-057 Report Engine",
    )

    elements = _build_story(model, layout, images, styles, fonts, doc.width, doc.height)
    painter = _header_band_painter(model, images, styles, fonts)

    # Generate PDF
    doc.build(elements, onFirstPage=painter, onLaterPages=painter)

    logger.info(f"Export rendered for {model.form_code}/{model.station}: "
                f"{len(layout.equipment_rows)} equipment rows, {len(layout.observation_rows)} observation rows")

    # Return bytes
    buffer.seek(0)
    return buffer.read()
