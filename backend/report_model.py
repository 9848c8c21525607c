"""
Canonical Model Builder for the FOR-ATA-057 report.

Normalizes a raw inspection record (the ``fetch_inspection`` shape) into one
immutable ``ReportModel`` consumed by both renderers. The model is built fresh
per render request and never mutated.

Date handling rules:
- Strings are read digit-by-digit with a pattern match. They are never parsed
  into a datetime and re-formatted, so a date-only string keeps its calendar
  day under any host timezone and an ISO date-time keeps its written hour.
- Structured ``date``/``datetime`` values are read through their local
  calendar fields (aware datetimes are first converted to local time).

Observation rules:
- Explicit observation records, when there is at least one, are the report's
  observations exactly as given.
- Otherwise one observation is derived per (equipment, item) that is
  non-compliant or carries a remark, scanning equipment in source order and
  items in checklist order.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import config
from checklist import CURRENT_CHECKLIST, ChecklistTable, StatusValue, parse_status

logger = logging.getLogger(__name__)

# =============================================================================
# FORM CONSTANTS
# =============================================================================

DEFAULT_FORM_CODE = "FOR-ATA-057"
DEFAULT_FORM_VERSION = "3"
DEFAULT_FORM_ISSUE_DATE = "17/09/2025"
FORM_TITLE = "CONTROL DE INSPECCIÓN DE REVISIÓN 360° DE EQUIPOS GSE MOTORIZADOS- ESTACIONES"

DEFAULT_LEGEND_TEXT = (
    "Para hacer la revisión inicial 360 de los vehículos motorizados el operador asignado a la "
    "operación de su equipo tiene la responsabilidad y obligación de verificar lo siguiente antes "
    "de operar la unidad siguiendo los puntos que se encuentran en los stickers de color amarillo "
    "en cada equipo, de encontrar alguna falla o algún problema en el equipo deberá ser reportado "
    "inmediatamente a su supervisor y al equipo de mantenimiento."
)

# Supports **bold** and line breaks
DEFAULT_FOOTER_TEXT = (
    "**NOTA:**\n"
    "**Para registros fisicos:** No debe borrarse, bajo ninguna circunstancia, la información "
    "registrada originalmente en un registro; las correcciones o anulación de una parte de la "
    "información plasmada en los registros físicos, deben realizarse trazando una línea diagonal "
    "sobre la información a corregir o anular, garantizando que ésta quede legible, para luego "
    "consignar la nueva información al margen de la información original. La justificación de la "
    "corrección o anulación efectuada debe realizarse en la parte posterior del registro indicando "
    "la fecha, nombre y/o firma de quien lo ejecutó para que quede constancia.\n"
    "\n"
    "**Para registros electrónicos:** Colocar un comentario sobre la información modificada. La "
    "justificación de la corrección o anulación efectuada debe realizarse en el comentario añadido "
    "indicando la fecha, nombre y/o firma de quien lo ejecutó para que quede constancia."
)

# =============================================================================
# DATE / HOUR NORMALIZATION
# =============================================================================

_ISO_DATE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$')
_ISO_TIME = re.compile(r'^\d{4}-\d{2}-\d{2}[T ](\d{2}):(\d{2})')
_DISPLAY_DATE = re.compile(r'^(\d{2})/(\d{2})/(\d{4})$')
_CLOCK = re.compile(r'^(\d{1,2}):(\d{2})(?::\d{2}(?:\.\d+)?)?$')


def _local_fields(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone()
    return value


def format_date(value: Any) -> str:
    """Format a date-like value as ``dd/mm/yyyy``; empty string when unusable."""
    if value is None or value == "":
        return ""
    if isinstance(value, str):
        text = value.strip()
        m = _ISO_DATE.match(text)
        if m:
            return f"{m.group(3)}/{m.group(2)}/{m.group(1)}"
        if _DISPLAY_DATE.match(text):
            return text
        logger.debug(f"Unrecognized date string: {value!r}")
        return ""
    if isinstance(value, datetime):
        value = _local_fields(value)
    if isinstance(value, date):
        return f"{value.day:02d}/{value.month:02d}/{value.year:04d}"
    return ""


def format_hour(value: Any) -> str:
    """Format the time part of a value as 24-hour ``HH:MM``; empty when there is none."""
    if value is None or value == "":
        return ""
    if isinstance(value, str):
        text = value.strip()
        m = _ISO_TIME.match(text)
        if m:
            return f"{m.group(1)}:{m.group(2)}"
        m = _CLOCK.match(text)
        if m and int(m.group(1)) < 24 and int(m.group(2)) < 60:
            return f"{int(m.group(1)):02d}:{m.group(2)}"
        return ""
    if isinstance(value, datetime):
        value = _local_fields(value)
        return f"{value.hour:02d}:{value.minute:02d}"
    return ""


def format_date_time(value: Any) -> str:
    """Format as ``dd/mm/yyyy HH:MM``, or just the date when there is no time part."""
    day = format_date(value)
    if not day:
        return ""
    hour = format_hour(value)
    return f"{day} {hour}" if hour else day


# =============================================================================
# REPORT MODEL
# =============================================================================

@dataclass(frozen=True)
class ChecklistResult:
    """Status and free-text remark recorded for one checklist item."""
    code: str
    status: Optional[StatusValue] = None
    remarks: str = ""


@dataclass(frozen=True)
class EquipmentEntry:
    """One equipment row; results are aligned with the checklist table order."""
    code: str
    hour: str
    checklist_results: Tuple[ChecklistResult, ...]
    inspector_signature_ref: Optional[str] = None

    def result(self, item_code: str) -> Optional[ChecklistResult]:
        for r in self.checklist_results:
            if r.code == item_code:
                return r
        return None

    def status(self, item_code: str) -> Optional[StatusValue]:
        r = self.result(item_code)
        return r.status if r else None

    @property
    def has_any_status(self) -> bool:
        return any(r.status is not None for r in self.checklist_results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "hour": self.hour,
            "checklist_results": {
                r.code: {
                    "status": _status_repr(r.status),
                    "remarks": r.remarks,
                }
                for r in self.checklist_results
            },
            "inspector_signature_ref": self.inspector_signature_ref,
        }


@dataclass(frozen=True)
class ObservationEntry:
    """One observation row, identified by (equipment_code, item_code)."""
    item_code: str
    equipment_code: str
    operator_text: str
    maintenance_text: Optional[str] = None
    derived: bool = False

    @property
    def key(self) -> Tuple[str, str]:
        return (self.equipment_code, self.item_code)

    @property
    def is_pending(self) -> bool:
        """Operator reported something and maintenance has not answered yet."""
        return bool(self.operator_text.strip()) and not (self.maintenance_text or "").strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_code": self.item_code,
            "equipment_code": self.equipment_code,
            "operator_text": self.operator_text,
            "maintenance_text": self.maintenance_text,
            "derived": self.derived,
        }


@dataclass(frozen=True)
class SignOff:
    """Supervisor or mechanic sign-off block."""
    name: str = ""
    signature_image_ref: Optional[str] = None
    signed_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "signature_image_ref": self.signature_image_ref,
            "signed_at": self.signed_at,
        }


@dataclass(frozen=True)
class ReportModel:
    """Renderer-agnostic, read-only input to the preview and export renderers."""
    form_code: str
    form_version: str
    form_issue_date: str
    inspection_date: str
    inspector_name: str
    legend_text: str
    note_text: str
    footer_text: str
    equipment: Tuple[EquipmentEntry, ...] = ()
    observations: Tuple[ObservationEntry, ...] = ()
    supervisor: SignOff = field(default_factory=SignOff)
    mechanic: SignOff = field(default_factory=SignOff)
    station: str = ""
    inspection_id: str = ""
    form_title: str = FORM_TITLE
    logo_ref: Optional[str] = None
    checklist: ChecklistTable = CURRENT_CHECKLIST
    observations_derived: bool = False
    record_form_code: str = ""

    @property
    def has_pending_observations(self) -> bool:
        return has_pending_observations(self.observations)

    def export_filename(self, extension: str = "pdf") -> str:
        """Default export filename: ``{form_code or "Inspeccion"}_{station}.<ext>``."""
        return f"{self.record_form_code or 'Inspeccion'}_{self.station}.{extension}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inspection_id": self.inspection_id,
            "form_code": self.form_code,
            "form_version": self.form_version,
            "form_issue_date": self.form_issue_date,
            "form_title": self.form_title,
            "checklist_version": self.checklist.version,
            "station": self.station,
            "inspection_date": self.inspection_date,
            "inspector_name": self.inspector_name,
            "legend_text": self.legend_text,
            "note_text": self.note_text,
            "footer_text": self.footer_text,
            "equipment": [e.to_dict() for e in self.equipment],
            "observations": [o.to_dict() for o in self.observations],
            "observations_derived": self.observations_derived,
            "has_pending_observations": self.has_pending_observations,
            "supervisor": self.supervisor.to_dict(),
            "mechanic": self.mechanic.to_dict(),
        }


def _status_repr(status: Optional[StatusValue]) -> Optional[str]:
    if status is None:
        return None
    return status.raw if status.raw else status.status.value


# =============================================================================
# BUILDERS
# =============================================================================

def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _optional_ref(value: Any) -> Optional[str]:
    if value is None:
        return None
    ref = str(value).strip()
    return ref or None


def _checklist_mapping(raw: Any, equipment_code: str) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning(f"Unreadable checklist data for equipment {equipment_code}")
            return {}
    if not isinstance(raw, Mapping):
        logger.warning(f"Unexpected checklist data type for equipment {equipment_code}: "
                       f"{type(raw).__name__}")
        return {}
    return raw


def _build_results(checklist_data: Mapping[str, Any], checklist: ChecklistTable) -> Tuple[ChecklistResult, ...]:
    results = []
    for code in checklist.codes:
        item = checklist_data.get(code)
        if isinstance(item, Mapping):
            status = parse_status(item.get("status"))
            remarks = _text(item.get("observations")).strip()
        else:
            status = parse_status(item)
            remarks = ""
        results.append(ChecklistResult(code=code, status=status, remarks=remarks))
    return tuple(results)


def _equipment_hour(raw_equipment: Mapping[str, Any], inspection_date: Any) -> str:
    """Own hour first, then last update, creation, and finally the inspection date."""
    own = format_hour(raw_equipment.get("hour"))
    if own:
        return own
    for candidate in (raw_equipment.get("updated_at"), raw_equipment.get("created_at"),
                      inspection_date):
        if candidate is None or candidate == "":
            continue
        return format_hour(candidate)
    return ""


def build_equipment(raw_equipment: Iterable[Mapping[str, Any]], inspection_date: Any = None,
                    checklist: ChecklistTable = CURRENT_CHECKLIST) -> Tuple[EquipmentEntry, ...]:
    """Normalize raw equipment records, preserving their source order."""
    entries = []
    for position, eq in enumerate(raw_equipment or []):
        if not isinstance(eq, Mapping):
            logger.warning(f"Skipping equipment entry {position}: expected a mapping, got {type(eq).__name__}")
            continue
        code = _text(eq.get("code"))
        entries.append(EquipmentEntry(
            code=code,
            hour=_equipment_hour(eq, inspection_date),
            checklist_results=_build_results(_checklist_mapping(eq.get("checklist_data"), code), checklist),
            inspector_signature_ref=_optional_ref(eq.get("inspector_signature_url")),
        ))
    return tuple(entries)


def build_explicit_observations(raw_observations: Iterable[Mapping[str, Any]]) -> Tuple[ObservationEntry, ...]:
    """Normalize explicit observation records, preserving their source order."""
    entries = []
    for position, obs in enumerate(raw_observations or []):
        if not isinstance(obs, Mapping):
            logger.warning(f"Skipping observation entry {position}: expected a mapping, got {type(obs).__name__}")
            continue
        maintenance = obs.get("obs_maintenance")
        entries.append(ObservationEntry(
            item_code=_text(obs.get("obs_id")),
            equipment_code=_text(obs.get("equipment_code")),
            operator_text=_text(obs.get("obs_operator")),
            maintenance_text=None if maintenance is None else str(maintenance),
        ))
    return tuple(entries)


def derive_observations(equipment: Iterable[EquipmentEntry],
                        existing: Iterable[ObservationEntry] = (),
                        checklist: ChecklistTable = CURRENT_CHECKLIST,
                        fallback_text: Optional[str] = None) -> Tuple[ObservationEntry, ...]:
    """
    Derive observations from checklist data.

    One observation per (equipment, item) whose status is non-compliant or
    that carries a remark, skipping keys already present in ``existing``.
    Each key appears at most once in the result.

    Args:
        equipment: Equipment entries in source order
        existing: Observations whose keys must not be derived again
        checklist: Checklist table giving the item scan order
        fallback_text: Operator text for a non-compliant item with no remark
    """
    if fallback_text is None:
        fallback_text = config.DERIVED_OBSERVATION_TEXT

    seen = {o.key for o in existing}
    derived: List[ObservationEntry] = []
    for eq in equipment:
        for code in checklist.codes:
            result = eq.result(code)
            if result is None:
                continue
            non_conforming = result.status is not None and result.status.is_non_conforming
            if not (non_conforming or result.remarks):
                continue
            key = (eq.code, code)
            if key in seen:
                continue
            seen.add(key)
            if result.remarks:
                operator_text = result.remarks
            elif non_conforming:
                operator_text = fallback_text
            else:
                operator_text = ""
            derived.append(ObservationEntry(
                item_code=code,
                equipment_code=eq.code,
                operator_text=operator_text,
                maintenance_text=None,
                derived=True,
            ))
    return tuple(derived)


def has_pending_observations(observations: Iterable[ObservationEntry]) -> bool:
    """True when any observation has operator text but no maintenance reply."""
    return any(o.is_pending for o in observations)


def build_sign_off(raw: Mapping[str, Any], role: str) -> SignOff:
    return SignOff(
        name=_text(raw.get(f"{role}_name")),
        signature_image_ref=_optional_ref(raw.get(f"{role}_signature_url")),
        signed_at=format_date_time(raw.get(f"{role}_signature_date")),
    )


def build_report_model(raw: Mapping[str, Any],
                       checklist: ChecklistTable = CURRENT_CHECKLIST,
                       fallback_text: Optional[str] = None,
                       logo_ref: Optional[str] = None) -> ReportModel:
    """
    Build the Report Model from a raw inspection.

    Missing optional fields become empty strings; an inspection with no
    equipment and no observations yields an empty (but valid) report.

    Args:
        raw: Inspection dictionary with ``equipment`` and ``observations`` lists
        checklist: Checklist vocabulary for the matrix columns
        fallback_text: Operator text for derived non-compliant observations
        logo_ref: Logo image reference used when the record carries none

    Returns:
        Immutable ReportModel
    """
    raw = raw or {}
    inspection_date = raw.get("inspection_date")
    equipment = build_equipment(raw.get("equipment"), inspection_date, checklist)

    explicit = build_explicit_observations(raw.get("observations"))
    # Explicit records win wholesale; derived ones are only used when there are none
    if explicit:
        observations = explicit
    else:
        observations = derive_observations(equipment, explicit, checklist, fallback_text)

    footer_text = raw.get("footer_text")
    legend_text = raw.get("legend_text")

    model = ReportModel(
        inspection_id=_text(raw.get("id")),
        form_code=_text(raw.get("form_code")) or DEFAULT_FORM_CODE,
        record_form_code=_text(raw.get("form_code")),
        form_version=_text(raw.get("form_version")) or DEFAULT_FORM_VERSION,
        form_issue_date=_text(raw.get("form_issue_date")) or DEFAULT_FORM_ISSUE_DATE,
        station=_text(raw.get("station")),
        inspection_date=format_date(inspection_date),
        inspector_name=_text(raw.get("inspector_name")),
        legend_text=DEFAULT_LEGEND_TEXT if legend_text is None else _text(legend_text),
        note_text=_text(raw.get("note_text")),
        footer_text=_text(footer_text) or DEFAULT_FOOTER_TEXT,
        equipment=equipment,
        observations=observations,
        observations_derived=not explicit and bool(observations),
        supervisor=build_sign_off(raw, "supervisor"),
        mechanic=build_sign_off(raw, "mechanic"),
        logo_ref=_optional_ref(raw.get("logo_url")) or _optional_ref(logo_ref),
        checklist=checklist,
    )
    logger.debug(f"Built report model for inspection {model.inspection_id or '<unsaved>'}: "
                 f"{len(equipment)} equipment, {len(observations)} observations "
                 f"({'derived' if model.observations_derived else 'explicit'})")
    return model
