"""
Matrix Layout Engine for the FOR-ATA-057 report.

Turns a ReportModel into an ordered list of tagged rows with pre-formatted
cell strings. Both the preview and the export renderer draw from this output,
so every piece of text that ends up in a cell is decided here.

Row order:
    equipment rows, legend row, note row (when there is a note), spacer,
    observation header, observation rows, footer row
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from checklist import ChecklistStatus, ChecklistTable, StatusValue
from report_model import EquipmentEntry, ObservationEntry, ReportModel

logger = logging.getLogger(__name__)

# =============================================================================
# FIXED FORM CONSTANTS
# =============================================================================

MIN_EQUIPMENT_ROWS = 17
MIN_OBSERVATION_ROWS = 7
EQUIPMENT_PLACEHOLDER_CODE = "TLM-XX-XXX"
OBSERVATION_PLACEHOLDER_CODE = "TLM-"

CHECK_MARK = "✓"
MAX_RAW_STATUS_LENGTH = 10

CODE_HEADER = "CÓDIGO"
HOUR_HEADER = "HORA"
SIGNATURE_HEADER = "FIRMA"
OBSERVATION_HEADERS = ("CÓDIGO", "OBSERVACIONES OPERADOR", "OBSERVACIONES MANTENIMIENTO")

MARK_LEGEND = (
    f"{CHECK_MARK} (Check) si el ítem cumple o está conforme.",
    "X si el ítem no cumple o presenta una observación.",
    "N/A si el ítem no aplica para el equipo o actividad inspeccionada.",
)

HEADER_BAND_LABELS = ("Código:", "Versión:", "Fecha de emisión:")
DATE_LABEL = "Fecha:"
INSPECTOR_LABEL = "Operador a cargo de la inspección:"
LOGO_PLACEHOLDER = "LOGO"

SIGN_OFF_CAPTIONS = (
    ("supervisor", "FIRMA\nSUPERVISOR O ENCARGADO DE ESTACIÓN"),
    ("mechanic", "FIRMA\nMECÁNICO DE ESTACIÓN"),
)

_STATUS_MARKS = {
    ChecklistStatus.CONFORME: CHECK_MARK,
    ChecklistStatus.NO_CONFORME: "X",
    ChecklistStatus.NO_APLICA: "N/A",
}


class HeaderMode(Enum):
    """How checklist column headers are rendered."""
    CODES = "codes"  # CHK-01 .. CHK-14
    TEXT = "text"    # full item description, wrapped


@dataclass(frozen=True)
class LayoutOptions:
    """
    Engine-wide layout switches.

    Column widths are fractions of the available table width; the checklist
    columns share whatever is left after the fixed columns.
    """
    pad_rows: bool = True
    header_mode: HeaderMode = HeaderMode.TEXT
    code_width: float = 0.08
    hour_width: float = 0.05
    signature_width: float = 0.09

    @classmethod
    def from_flags(cls, pad_rows: Any = True, header_mode: Any = None) -> "LayoutOptions":
        """Build options from loosely-typed request flags; unknown header modes fall back to text."""
        mode = HeaderMode.TEXT
        if isinstance(header_mode, HeaderMode):
            mode = header_mode
        elif header_mode:
            try:
                mode = HeaderMode(str(header_mode).lower())
            except ValueError:
                logger.warning(f"Unknown header mode {header_mode!r}, using text headers")
        return cls(pad_rows=bool(pad_rows), header_mode=mode)


# =============================================================================
# STATUS MARKS AND MARKUP
# =============================================================================

def status_to_mark(status: Optional[StatusValue]) -> str:
    """
    Map a checklist status to the cell mark.

    conforme -> checkmark, no_conforme -> X, no_aplica -> N/A, absent -> "".
    Unrecognized values are surfaced verbatim, truncated to 10 characters.
    """
    if status is None:
        return ""
    mark = _STATUS_MARKS.get(status.status)
    if mark is not None:
        return mark
    logger.debug(f"Unrecognized checklist status {status.raw!r}")
    return status.raw[:MAX_RAW_STATUS_LENGTH]


_BOLD = re.compile(r'\*\*(.+?)\*\*')
_EMPHASIS = re.compile(r'\*(.+?)\*')

Segment = Tuple[str, bool]
MarkupLine = Tuple[Segment, ...]


def parse_markup(text: str) -> Tuple[MarkupLine, ...]:
    """
    Parse the footer markup subset.

    Supports ``**bold**`` and line breaks; single-asterisk emphasis is
    stripped to plain text.

    Returns:
        One tuple of (text, is_bold) segments per line; blank lines are empty tuples
    """
    lines = []
    for raw_line in (text or "").split("\n"):
        segments: List[Segment] = []
        pos = 0
        for m in _BOLD.finditer(raw_line):
            if m.start() > pos:
                segments.append((_EMPHASIS.sub(r'\1', raw_line[pos:m.start()]), False))
            segments.append((m.group(1), True))
            pos = m.end()
        if pos < len(raw_line):
            segments.append((_EMPHASIS.sub(r'\1', raw_line[pos:]), False))
        lines.append(tuple(s for s in segments if s[0]))
    return tuple(lines)


def markup_plain_text(lines: Tuple[MarkupLine, ...]) -> str:
    return "\n".join("".join(text for text, _ in line) for line in lines)


# =============================================================================
# ROWS
# =============================================================================

class RowKind(Enum):
    EQUIPMENT = "equipment"
    LEGEND = "legend"
    SPACER = "spacer"
    OBSERVATION_HEADER = "observation_header"
    OBSERVATION = "observation"


@dataclass(frozen=True)
class EquipmentRow:
    """
    One matrix row: code, hour, one mark per checklist column, signature.

    ``index`` is the row's position among equipment rows; signature images
    are keyed by it.
    """
    kind: ClassVar[RowKind] = RowKind.EQUIPMENT
    index: int
    code: str
    hour: str
    marks: Tuple[str, ...]
    signature_ref: Optional[str] = None
    placeholder: bool = False

    @property
    def cells(self) -> Tuple[str, ...]:
        # The signature cell carries no text; the image is placed by the renderer
        return (self.code, self.hour) + self.marks + ("",)


@dataclass(frozen=True)
class LegendRow:
    """Full-width prose row. ``role`` is one of legend, note, footer."""
    kind: ClassVar[RowKind] = RowKind.LEGEND
    role: str
    lines: Tuple[MarkupLine, ...]

    @property
    def text(self) -> str:
        return markup_plain_text(self.lines)

    @property
    def cells(self) -> Tuple[str, ...]:
        return (self.text,)


@dataclass(frozen=True)
class SpacerRow:
    kind: ClassVar[RowKind] = RowKind.SPACER

    @property
    def cells(self) -> Tuple[str, ...]:
        return ()


@dataclass(frozen=True)
class ObservationHeaderRow:
    kind: ClassVar[RowKind] = RowKind.OBSERVATION_HEADER
    headers: Tuple[str, ...] = OBSERVATION_HEADERS

    @property
    def cells(self) -> Tuple[str, ...]:
        return self.headers


@dataclass(frozen=True)
class ObservationRow:
    kind: ClassVar[RowKind] = RowKind.OBSERVATION
    index: int
    code: str
    operator_text: str
    maintenance_text: str
    placeholder: bool = False
    pending: bool = False

    @property
    def cells(self) -> Tuple[str, ...]:
        return (self.code, self.operator_text, self.maintenance_text)


Row = Union[EquipmentRow, LegendRow, SpacerRow, ObservationHeaderRow, ObservationRow]


@dataclass(frozen=True)
class SignOffCell:
    """Supervisor or mechanic block printed under the observations."""
    role: str
    name: str
    signed_at: str
    caption: str
    signature_ref: Optional[str] = None

    @property
    def cells(self) -> Tuple[str, ...]:
        return (self.name, self.signed_at, self.caption)


@dataclass(frozen=True)
class MatrixLayout:
    """Complete renderer-agnostic description of the report body."""
    header_cells: Tuple[str, ...]
    column_codes: Tuple[str, ...]
    column_widths: Tuple[float, ...]
    header_mode: HeaderMode
    mark_legend: Tuple[str, ...] = MARK_LEGEND
    metadata_cells: Tuple[str, ...] = ()
    rows: Tuple[Row, ...] = field(default_factory=tuple)
    sign_offs: Tuple[SignOffCell, ...] = ()

    @property
    def column_count(self) -> int:
        return len(self.header_cells)

    @property
    def equipment_rows(self) -> Tuple[EquipmentRow, ...]:
        return tuple(r for r in self.rows if r.kind is RowKind.EQUIPMENT)

    @property
    def observation_rows(self) -> Tuple[ObservationRow, ...]:
        return tuple(r for r in self.rows if r.kind is RowKind.OBSERVATION)

    def legend_row(self, role: str) -> Optional[LegendRow]:
        for r in self.rows:
            if r.kind is RowKind.LEGEND and r.role == role:
                return r
        return None

    @property
    def body_rows(self) -> Tuple[Row, ...]:
        """Every row except the footer, which is printed after the sign-off block."""
        return tuple(r for r in self.rows if not (r.kind is RowKind.LEGEND and r.role == "footer"))

    def text_rows(self) -> List[Tuple[str, ...]]:
        """
        Ordered cell text of the report, images excluded: metadata line,
        matrix header, body rows, sign-offs, footer.
        """
        out = [self.metadata_cells, self.header_cells]
        out.extend(r.cells for r in self.body_rows)
        out.extend(s.cells for s in self.sign_offs)
        footer = self.legend_row("footer")
        if footer is not None:
            out.append(footer.cells)
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header_mode": self.header_mode.value,
            "header_cells": list(self.header_cells),
            "column_codes": list(self.column_codes),
            "column_widths": [round(w, 4) for w in self.column_widths],
            "mark_legend": list(self.mark_legend),
            "metadata_cells": list(self.metadata_cells),
            "rows": [
                {"kind": r.kind.value, "cells": list(r.cells)}
                for r in self.rows
            ],
            "sign_offs": [
                {"role": s.role, "cells": list(s.cells), "has_signature": bool(s.signature_ref)}
                for s in self.sign_offs
            ],
        }


# =============================================================================
# LAYOUT
# =============================================================================

def column_widths(checklist_columns: int, options: LayoutOptions) -> Tuple[float, ...]:
    """Fixed code/hour/signature widths; the rest is split evenly across checklist columns."""
    fixed = options.code_width + options.hour_width + options.signature_width
    remaining = max(0.0, 1.0 - fixed)
    each = remaining / checklist_columns if checklist_columns else 0.0
    return (options.code_width, options.hour_width) + (each,) * checklist_columns + (options.signature_width,)


def header_cells(checklist: ChecklistTable, mode: HeaderMode) -> Tuple[str, ...]:
    if mode is HeaderMode.CODES:
        labels = checklist.codes
    else:
        labels = tuple(item.description for item in checklist.items)
    return (CODE_HEADER, HOUR_HEADER) + labels + (SIGNATURE_HEADER,)


def _equipment_is_blank(entry: EquipmentEntry) -> bool:
    return not (entry.has_any_status or entry.inspector_signature_ref or entry.hour)


def _observation_is_blank(entry: ObservationEntry) -> bool:
    return not (entry.operator_text.strip() or (entry.maintenance_text or "").strip())


def build_equipment_rows(model: ReportModel, checklist: ChecklistTable,
                         options: LayoutOptions) -> List[EquipmentRow]:
    entries = list(model.equipment)
    if not options.pad_rows:
        entries = [e for e in entries if not _equipment_is_blank(e)]

    rows = [
        EquipmentRow(
            index=idx,
            code=entry.code or EQUIPMENT_PLACEHOLDER_CODE,
            hour=entry.hour,
            marks=tuple(status_to_mark(entry.status(code)) for code in checklist.codes),
            signature_ref=entry.inspector_signature_ref,
        )
        for idx, entry in enumerate(entries)
    ]

    if options.pad_rows:
        blank_marks = ("",) * len(checklist)
        while len(rows) < MIN_EQUIPMENT_ROWS:
            rows.append(EquipmentRow(
                index=len(rows),
                code=EQUIPMENT_PLACEHOLDER_CODE,
                hour="",
                marks=blank_marks,
                placeholder=True,
            ))
    return rows


def build_observation_rows(model: ReportModel, options: LayoutOptions) -> List[ObservationRow]:
    entries = list(model.observations)
    if not options.pad_rows:
        entries = [o for o in entries if not _observation_is_blank(o)]

    rows = [
        ObservationRow(
            index=idx,
            code=obs.equipment_code or obs.item_code or OBSERVATION_PLACEHOLDER_CODE,
            operator_text=obs.operator_text,
            maintenance_text=obs.maintenance_text or "",
            pending=obs.is_pending,
        )
        for idx, obs in enumerate(entries)
    ]

    if options.pad_rows:
        while len(rows) < MIN_OBSERVATION_ROWS:
            rows.append(ObservationRow(
                index=len(rows),
                code=OBSERVATION_PLACEHOLDER_CODE,
                operator_text="",
                maintenance_text="",
                placeholder=True,
            ))
    return rows


def build_sign_offs(model: ReportModel) -> Tuple[SignOffCell, ...]:
    cells = []
    for role, caption in SIGN_OFF_CAPTIONS:
        sign_off = model.supervisor if role == "supervisor" else model.mechanic
        cells.append(SignOffCell(
            role=role,
            name=sign_off.name or "-",
            signed_at=sign_off.signed_at,
            caption=caption,
            signature_ref=sign_off.signature_image_ref,
        ))
    return tuple(cells)


def build_layout(model: ReportModel, options: Optional[LayoutOptions] = None,
                 checklist: Optional[ChecklistTable] = None) -> MatrixLayout:
    """
    Build the matrix layout for a report.

    Args:
        model: The report model
        options: Padding and header switches (defaults: padded, text headers)
        checklist: Checklist vocabulary for the columns; defaults to the model's table

    Returns:
        MatrixLayout with rows in report order
    """
    options = options or LayoutOptions()
    checklist = checklist or model.checklist

    rows: List[Row] = []
    rows.extend(build_equipment_rows(model, checklist, options))
    rows.append(LegendRow(role="legend", lines=parse_markup(model.legend_text)))
    if model.note_text.strip():
        rows.append(LegendRow(role="note", lines=parse_markup(model.note_text)))
    rows.append(SpacerRow())
    rows.append(ObservationHeaderRow())
    rows.extend(build_observation_rows(model, options))
    rows.append(LegendRow(role="footer", lines=parse_markup(model.footer_text)))

    layout = MatrixLayout(
        header_cells=header_cells(checklist, options.header_mode),
        column_codes=checklist.codes,
        column_widths=column_widths(len(checklist), options),
        header_mode=options.header_mode,
        metadata_cells=(DATE_LABEL, model.inspection_date, INSPECTOR_LABEL, model.inspector_name),
        rows=tuple(rows),
        sign_offs=build_sign_offs(model),
    )
    logger.debug(f"Layout built: {len(layout.equipment_rows)} equipment rows, "
                 f"{len(layout.observation_rows)} observation rows, "
                 f"{len(checklist)} checklist columns, pad_rows={options.pad_rows}")
    return layout
