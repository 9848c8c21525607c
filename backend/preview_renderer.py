"""
Preview/Print Renderer.

Produces a standalone HTML document for one A4 landscape page from the
ReportModel and its MatrixLayout. All cell text comes from the layout; this
module only decides markup and styling.

Signature images are embedded as data URIs. A row whose image is missing gets
an empty cell, never a broken-image placeholder.
"""

import logging
from typing import Optional

from jinja2 import Environment, BaseLoader, select_autoescape
from markupsafe import Markup, escape

from matrix_layout import LOGO_PLACEHOLDER, HEADER_BAND_LABELS, MatrixLayout
from report_model import ReportModel
from signature_loader import NO_IMAGES, ReportImages

logger = logging.getLogger(__name__)

PRIMARY_COLOR = "#093071"
HEADER_BACKGROUND = "#002060"
OBSERVATION_HEADER_BACKGROUND = "#E7E6E6"


# =============================================================================
# TEMPLATE
# =============================================================================

HTML_TEMPLATE = '''<!DOCTYPE html>
<html lang="es">
<head>
<meta charset="utf-8">
<title>{{ model.form_code }} - {{ model.station }}</title>
<style>
  @page { size: A4 landscape; margin: 8mm; }
  * { box-sizing: border-box; }
  body { font-family: Arial, Helvetica, sans-serif; font-size: 9px; color: #000; margin: 0; }
  body.compact { font-size: 7px; }
  .sheet { width: 281mm; margin: 0 auto; }
  .band { width: 100%; border-collapse: collapse; margin-bottom: 4px; }
  .band td { border: 1px solid #000; padding: 2px 4px; }
  .band .logo { width: 18%; text-align: center; font-weight: bold; color: {{ primary }}; }
  .band .logo img { max-height: 40px; max-width: 100%; }
  .band .title { text-align: center; font-weight: bold; font-size: 1.35em; color: {{ primary }}; }
  .band .meta { width: 20%; }
  .band .meta div { border-bottom: 1px solid #000; padding: 1px 0; }
  .band .meta div:last-child { border-bottom: none; }
  .metadata { margin: 2px 0; }
  .metadata .label { font-weight: bold; }
  .metadata .value { display: inline-block; min-width: 120px; border-bottom: 1px solid #000; margin-right: 16px; }
  .marks { margin: 2px 0 4px 0; }
  .matrix { width: 100%; border-collapse: collapse; table-layout: fixed; }
  .matrix th, .matrix td { border: 1px solid #000; padding: 1px 2px; text-align: center; vertical-align: middle; overflow: hidden; }
  .matrix th { background: {{ header_bg }}; color: #fff; font-weight: bold; }
  .matrix th.item { font-size: 0.75em; font-weight: normal; }
  .matrix tr.equipment td { height: 18px; }
  body.compact .matrix tr.equipment td { height: 12px; }
  .matrix tr.placeholder td { color: #8c8c8c; }
  .matrix td.signature img { max-height: 16px; max-width: 100%; }
  body.compact .matrix td.signature img { max-height: 11px; }
  .matrix td.legend { text-align: justify; padding: 3px 4px; }
  .matrix tr.spacer td { border: none; height: 6px; }
  .matrix tr.obs-header th { background: {{ obs_header_bg }}; color: #000; }
  .matrix tr.observation td.text { text-align: left; }
  .matrix tr.observation.pending td.maintenance { background: #fff4e5; }
  .signatures { display: flex; justify-content: space-around; margin-top: 10px; page-break-inside: avoid; }
  .signatures .block { width: 35%; text-align: center; }
  .signatures .image { height: 50px; border-bottom: 1px solid #000; display: flex; align-items: flex-end; justify-content: center; }
  .signatures .image img { max-height: 48px; max-width: 100%; }
  body.compact .signatures .image { height: 32px; }
  .signatures .caption { font-weight: bold; }
  .footer { margin-top: 8px; font-size: 0.85em; text-align: justify; }
  .toolbar { text-align: right; margin: 6px 0; }
  @media print { .no-print { display: none !important; } }
</style>
</head>
<body class="{{ 'compact' if compact else '' }}">
<div class="toolbar no-print"><button type="button" id="export-button" onclick="triggerExport()">Imprimir / Exportar PDF</button></div>
<div class="sheet">
<table class="band">
<tr>
<td class="logo" rowspan="3">{% if images.logo %}<img src="{{ images.logo.data_uri() }}" alt="">{% else %}{{ logo_placeholder }}{% endif %}</td>
<td class="title" rowspan="3">{{ model.form_title }}</td>
<td class="meta">{{ band_labels[0] }} {{ model.form_code }}</td>
</tr>
<tr><td class="meta">{{ band_labels[1] }} {{ model.form_version }}</td></tr>
<tr><td class="meta">{{ band_labels[2] }} {{ model.form_issue_date }}</td></tr>
</table>

<div class="metadata" data-row="metadata"><span class="label" data-cell>{{ layout.metadata_cells[0] }}</span> <span class="value" data-cell>{{ layout.metadata_cells[1] }}</span> <span class="label" data-cell>{{ layout.metadata_cells[2] }}</span> <span class="value" data-cell>{{ layout.metadata_cells[3] }}</span></div>

<div class="marks">{% for line in layout.mark_legend %}<div>{{ line }}</div>{% endfor %}</div>

<table class="matrix">
<colgroup>{% for width in layout.column_widths %}<col style="width: {{ '%.3f' % (width * 100) }}%">{% endfor %}</colgroup>
<thead>
<tr data-row="header">{% for cell in layout.header_cells %}<th class="{{ 'item' if 1 < loop.index0 < layout.column_count - 1 else '' }}" data-cell>{{ cell }}</th>{% endfor %}</tr>
</thead>
<tbody>
{% for row in layout.body_rows %}
{% if row.kind.value == 'equipment' %}
<tr class="equipment{{ ' placeholder' if row.placeholder else '' }}" data-row="equipment">{% for cell in row.cells[:-1] %}<td data-cell>{{ cell }}</td>{% endfor %}<td class="signature" data-cell>{% set image = images.for_row(row.index) %}{% if image %}<img src="{{ image.data_uri() }}" alt="">{% endif %}</td></tr>
{% elif row.kind.value == 'legend' %}
<tr class="legend" data-row="{{ row.role }}"><td class="legend" colspan="{{ layout.column_count }}" data-cell>{{ row.lines | markup_lines }}</td></tr>
{% elif row.kind.value == 'spacer' %}
<tr class="spacer" data-row="spacer"><td colspan="{{ layout.column_count }}"></td></tr>
{% elif row.kind.value == 'observation_header' %}
<tr class="obs-header" data-row="observation_header"><th colspan="{{ obs_spans[0] }}" data-cell>{{ row.cells[0] }}</th><th colspan="{{ obs_spans[1] }}" data-cell>{{ row.cells[1] }}</th><th colspan="{{ obs_spans[2] }}" data-cell>{{ row.cells[2] }}</th></tr>
{% elif row.kind.value == 'observation' %}
<tr class="observation{{ ' placeholder' if row.placeholder else '' }}{{ ' pending' if row.pending else '' }}" data-row="observation"><td colspan="{{ obs_spans[0] }}" data-cell>{{ row.cells[0] }}</td><td class="text" colspan="{{ obs_spans[1] }}" data-cell>{{ row.cells[1] }}</td><td class="text maintenance" colspan="{{ obs_spans[2] }}" data-cell>{{ row.cells[2] }}</td></tr>
{% endif %}
{% endfor %}
</tbody>
</table>

<div class="signatures">
{% for sign_off in layout.sign_offs %}
<div class="block" data-row="{{ sign_off.role }}">
<div class="image">{% set image = images.for_role(sign_off.role) %}{% if image %}<img src="{{ image.data_uri() }}" alt="">{% endif %}</div>
<div class="name" data-cell>{{ sign_off.name }}</div>
<div class="date" data-cell>{{ sign_off.signed_at }}</div>
<div class="caption" data-cell>{{ sign_off.caption | nl2br }}</div>
</div>
{% endfor %}
</div>

{% if footer %}<div class="footer" data-row="footer"><div data-cell>{{ footer.lines | markup_lines }}</div></div>{% endif %}
</div>
<script>
  function triggerExport() { window.print(); }
  function reportReady() {
    if (document.readyState !== 'complete') { return false; }
    var imgs = document.images;
    for (var i = 0; i < imgs.length; i++) { if (!imgs[i].complete) { return false; } }
    return true;
  }
  window.__forata057_ready = false;
  window.addEventListener('load', function () { window.__forata057_ready = reportReady(); });
{% if auto_print %}
  (function waitThenExport(attempt) {
    if (reportReady()) { window.__forata057_ready = true; triggerExport(); return; }
    if (attempt < 100) { setTimeout(function () { waitThenExport(attempt + 1); }, 100); }
  })(0);
{% endif %}
</script>
</body>
</html>
'''


def _nl2br(text: str) -> Markup:
    return Markup("<br>").join(escape(part) for part in (text or "").split("\n"))


def _markup_lines(lines) -> Markup:
    rendered = []
    for line in lines:
        parts = []
        for text, bold in line:
            parts.append(Markup("<strong>%s</strong>") % text if bold else escape(text))
        rendered.append(Markup("").join(parts))
    return Markup("<br>").join(rendered)


def observation_spans(column_count: int):
    """Column spans of (code, operator, maintenance) across the matrix width."""
    code_span = 2 if column_count > 4 else 1
    rest = max(2, column_count - code_span)
    operator_span = rest // 2
    return (code_span, operator_span, rest - operator_span)


class PreviewRenderer:
    """Renders the report preview as a standalone HTML document."""

    def __init__(self):
        self.env = Environment(
            loader=BaseLoader(),
            autoescape=select_autoescape(['html', 'xml'], default_for_string=True),
        )
        self.env.filters["nl2br"] = _nl2br
        self.env.filters["markup_lines"] = _markup_lines
        self.template = self.env.from_string(HTML_TEMPLATE)

    def render(self, model: ReportModel, layout: MatrixLayout,
               images: Optional[ReportImages] = None,
               compact: bool = False, auto_print: bool = False) -> str:
        """
        Render the preview.

        Args:
            model: The report model (header band and titles)
            layout: Matrix layout built from the same model
            images: Pre-loaded images; omitted means every image cell is blank
            compact: Smaller fonts and row heights for on-screen review
            auto_print: Trigger the print dialog once the page has fully loaded

        Returns:
            HTML document as a string
        """
        html = self.template.render(
            model=model,
            layout=layout,
            images=images or NO_IMAGES,
            compact=compact,
            auto_print=auto_print,
            footer=layout.legend_row("footer"),
            obs_spans=observation_spans(layout.column_count),
            band_labels=HEADER_BAND_LABELS,
            logo_placeholder=LOGO_PLACEHOLDER,
            primary=PRIMARY_COLOR,
            header_bg=HEADER_BACKGROUND,
            obs_header_bg=OBSERVATION_HEADER_BACKGROUND,
        )
        logger.debug(f"Preview rendered for {model.form_code}/{model.station} "
                     f"({len(layout.rows)} rows, compact={compact})")
        return html


_renderer = None


def render_preview(model: ReportModel, layout: MatrixLayout,
                   images: Optional[ReportImages] = None,
                   compact: bool = False, auto_print: bool = False) -> str:
    """Render with a shared, lazily created renderer; the compiled template holds no per-request state."""
    global _renderer
    if _renderer is None:
        _renderer = PreviewRenderer()
    return _renderer.render(model, layout, images, compact=compact, auto_print=auto_print)
