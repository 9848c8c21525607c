"""
Report service: wires storage, model builder, layout, image loader and the
two renderers into the host-facing operations.

Each call builds its own ReportModel and discards it afterwards; nothing is
cached between requests.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

import config
import database as db
from checklist import CURRENT_CHECKLIST, ChecklistTable, get_checklist_table
from matrix_layout import LayoutOptions, MatrixLayout, build_layout
from pdf_generator import generate_report_pdf
from preview_renderer import render_preview
from report_model import ReportModel, build_report_model
from signature_loader import ReportImages, SignatureImageLoader, load_report_images

logger = logging.getLogger(__name__)


class ReportUnavailableError(Exception):
    """The inspection source failed; the report cannot be rendered right now."""
    pass


class InspectionNotFoundError(Exception):
    """No inspection exists with the requested ID."""
    pass


@dataclass(frozen=True)
class PreparedReport:
    """Everything a renderer needs, resolved before composition starts."""
    model: ReportModel
    layout: MatrixLayout
    images: ReportImages


def fetch_inspection(inspection_id: str,
                     fetcher: Callable[[str], Optional[dict]] = None) -> dict:
    """
    Fetch a raw inspection by ID.

    Raises:
        ReportUnavailableError: If the storage layer fails
        InspectionNotFoundError: If there is no such inspection
    """
    fetcher = fetcher or db.get_inspection
    try:
        raw = fetcher(inspection_id)
    except SQLAlchemyError as e:
        logger.error(f"Inspection source failed for {inspection_id}: {e}", exc_info=True)
        raise ReportUnavailableError(f"Inspection source unavailable: {e}") from e
    if raw is None:
        raise InspectionNotFoundError(f"Inspection not found: {inspection_id}")
    return raw


def checklist_for(raw: Mapping[str, Any]) -> ChecklistTable:
    """Checklist table matching the record's form version, else the current one."""
    version = raw.get("form_version")
    if not version:
        return CURRENT_CHECKLIST
    try:
        return get_checklist_table(str(version))
    except KeyError:
        logger.warning(f"No checklist registered for form version {version}; using version "
                       f"{CURRENT_CHECKLIST.version}")
        return CURRENT_CHECKLIST


def prepare_report(raw: Mapping[str, Any], options: Optional[LayoutOptions] = None,
                   loader: Optional[SignatureImageLoader] = None,
                   load_images: bool = True) -> PreparedReport:
    """
    Build model and layout, then load every image the report references.

    Args:
        raw: Inspection in the ``fetch_inspection`` shape
        options: Layout switches
        loader: Image loader (a default one is created when omitted)
        load_images: False skips all image loading (blank cells everywhere)
    """
    checklist = checklist_for(raw)
    model = build_report_model(raw, checklist=checklist)
    layout = build_layout(model, options, checklist)
    if load_images:
        images = load_report_images(model, layout, loader, logo_path=config.REPORT_LOGO_PATH or None)
    else:
        images = ReportImages()
    return PreparedReport(model=model, layout=layout, images=images)


# =============================================================================
# OPERATIONS ON RAW RECORDS
# =============================================================================

def preview_report(raw: Mapping[str, Any], options: Optional[LayoutOptions] = None,
                   compact: bool = False, auto_print: bool = False,
                   loader: Optional[SignatureImageLoader] = None) -> str:
    """Render the preview HTML for a raw inspection."""
    prepared = prepare_report(raw, options, loader)
    return render_preview(prepared.model, prepared.layout, prepared.images,
                          compact=compact, auto_print=auto_print)


def export_report(raw: Mapping[str, Any], options: Optional[LayoutOptions] = None,
                  loader: Optional[SignatureImageLoader] = None) -> Tuple[bytes, str]:
    """
    Render the export PDF for a raw inspection.

    Returns:
        Tuple of (PDF bytes, default filename)
    """
    prepared = prepare_report(raw, options, loader)
    pdf_bytes = generate_report_pdf(prepared.model, prepared.layout, prepared.images)
    return pdf_bytes, prepared.model.export_filename("pdf")


def report_payload(raw: Mapping[str, Any], options: Optional[LayoutOptions] = None) -> Dict[str, Any]:
    """JSON-ready dump of the report model and its layout; no images are loaded."""
    prepared = prepare_report(raw, options, load_images=False)
    return {
        "model": prepared.model.to_dict(),
        "layout": prepared.layout.to_dict(),
    }


def inspection_summary(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Listing entry for one inspection, including the pending-observation flag."""
    model = build_report_model(raw, checklist=checklist_for(raw))
    return {
        "id": raw.get("id"),
        "form_code": model.form_code,
        "station": model.station,
        "inspection_date": model.inspection_date,
        "inspector_name": model.inspector_name,
        "status": raw.get("status"),
        "equipment_count": len(model.equipment),
        "observation_count": len(model.observations),
        "observations_derived": model.observations_derived,
        "has_pending_observations": model.has_pending_observations,
    }


# =============================================================================
# OPERATIONS BY INSPECTION ID
# =============================================================================

def render_preview_for(inspection_id: str, options: Optional[LayoutOptions] = None,
                       compact: bool = False, auto_print: bool = False,
                       loader: Optional[SignatureImageLoader] = None) -> str:
    return preview_report(fetch_inspection(inspection_id), options,
                          compact=compact, auto_print=auto_print, loader=loader)


def render_export_for(inspection_id: str, options: Optional[LayoutOptions] = None,
                      loader: Optional[SignatureImageLoader] = None) -> Tuple[bytes, str]:
    return export_report(fetch_inspection(inspection_id), options, loader=loader)


def report_payload_for(inspection_id: str, options: Optional[LayoutOptions] = None) -> Dict[str, Any]:
    return report_payload(fetch_inspection(inspection_id), options)
