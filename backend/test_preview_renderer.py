from html.parser import HTMLParser

from matrix_layout import LayoutOptions, build_layout
from preview_renderer import observation_spans, render_preview
from report_model import build_report_model
from signature_loader import SignatureImageLoader, load_report_images

VOID_TAGS = {"br", "img", "meta", "col", "input", "hr", "link"}


class CellCollector(HTMLParser):
    """Collects ``data-cell`` text grouped by ``data-row`` element, in document order."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.rows = []
        self.images = 0
        self._depth = 0
        self._cell = None
        self._cell_depth = None

    def handle_starttag(self, tag, attrs):
        attrs = dict(attrs)
        if tag == "img":
            self.images += 1
        if tag in VOID_TAGS:
            if tag == "br" and self._cell is not None:
                self._cell.append("\n")
            return
        self._depth += 1
        if "data-row" in attrs:
            self.rows.append([])
        if "data-cell" in attrs:
            self._cell = []
            self._cell_depth = self._depth

    def handle_endtag(self, tag):
        if tag in VOID_TAGS:
            return
        if self._cell is not None and self._depth == self._cell_depth:
            self.rows[-1].append("".join(self._cell))
            self._cell = None
        self._depth -= 1

    def handle_data(self, data):
        if self._cell is not None:
            self._cell.append(data)


def preview_rows(html: str):
    collector = CellCollector()
    collector.feed(html)
    return [tuple(r) for r in collector.rows]


def test_preview_cells_match_layout(sample_inspection) -> None:
    model = build_report_model(sample_inspection)
    layout = build_layout(model)
    html = render_preview(model, layout)
    assert preview_rows(html) == layout.text_rows()


def test_header_band_and_legend(sample_inspection) -> None:
    model = build_report_model(sample_inspection)
    html = render_preview(model, build_layout(model))
    assert "CONTROL DE INSPECCIÓN DE REVISIÓN 360° DE EQUIPOS GSE MOTORIZADOS- ESTACIONES" in html
    assert "Código: FOR-ATA-057" in html
    assert "Versión: 3" in html
    assert "Fecha de emisión: 17/09/2025" in html
    assert "✓ (Check) si el ítem cumple o está conforme." in html
    assert ">LOGO<" in html
    assert "size: A4 landscape" in html


def test_missing_images_leave_blank_cells(sample_inspection) -> None:
    model = build_report_model(sample_inspection)
    html = render_preview(model, build_layout(model))
    collector = CellCollector()
    collector.feed(html)
    assert collector.images == 0


def test_loaded_images_are_embedded_inline(sample_inspection) -> None:
    model = build_report_model(sample_inspection)
    layout = build_layout(model)
    images = load_report_images(model, layout, SignatureImageLoader())
    html = render_preview(model, layout, images)
    collector = CellCollector()
    collector.feed(html)
    # one equipment signature plus the supervisor; the mechanic has none
    assert collector.images == 2
    assert 'src="data:image/png;base64,' in html


def test_compact_mode_flag(sample_inspection) -> None:
    model = build_report_model(sample_inspection)
    layout = build_layout(model)
    assert '<body class="compact">' in render_preview(model, layout, compact=True)
    assert '<body class="">' in render_preview(model, layout)


def test_auto_export_only_when_requested(sample_inspection) -> None:
    model = build_report_model(sample_inspection)
    layout = build_layout(model)
    manual = render_preview(model, layout)
    auto = render_preview(model, layout, auto_print=True)

    assert 'id="export-button"' in manual
    assert "waitThenExport" not in manual
    assert "waitThenExport" in auto
    assert "reportReady()" in auto


def test_user_text_is_escaped() -> None:
    model = build_report_model({"observations": [
        {"obs_id": "CHK-01", "equipment_code": "A", "obs_operator": "<script>alert(1)</script>"},
    ]})
    html = render_preview(model, build_layout(model, LayoutOptions(pad_rows=False)))
    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;" in html


def test_footer_bold_markup_is_rendered(sample_inspection) -> None:
    model = build_report_model(sample_inspection)
    html = render_preview(model, build_layout(model))
    assert "<strong>NOTA:</strong>" in html
    assert "**" not in html


def test_observation_spans_cover_the_matrix() -> None:
    assert sum(observation_spans(17)) == 17
    assert observation_spans(17)[0] == 2
    assert sum(observation_spans(6)) == 6
