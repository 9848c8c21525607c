import logging
import uuid

import pytest
from sqlalchemy.exc import OperationalError

import database as db
import report_service
from checklist import CURRENT_CHECKLIST
from matrix_layout import HeaderMode, LayoutOptions
from report_service import (
    InspectionNotFoundError,
    ReportUnavailableError,
    export_report,
    fetch_inspection,
    inspection_summary,
    prepare_report,
    report_payload,
)


@pytest.fixture
def stored_inspection(sample_inspection) -> str:
    sample_inspection["id"] = str(uuid.uuid4())
    inspection_id = db.save_inspection(sample_inspection)
    yield inspection_id
    db.delete_inspection(inspection_id)


def _failing_fetcher(inspection_id):
    raise OperationalError("SELECT 1", {}, Exception("database is locked"))


# =============================================================================
# FETCHING
# =============================================================================

def test_fetch_round_trips_through_storage(stored_inspection) -> None:
    raw = fetch_inspection(stored_inspection)
    assert raw["station"] == "LIM"
    assert [e["code"] for e in raw["equipment"]] == ["TLM-AR-002", "TLM-FT-010"]
    assert raw["equipment"][0]["checklist_data"]["CHK-04"]["observations"] == "Sticker despegado"
    assert raw["observations"] == []


def test_fetch_unknown_inspection_raises_not_found() -> None:
    with pytest.raises(InspectionNotFoundError):
        fetch_inspection("does-not-exist")


def test_source_failure_raises_unavailable(caplog) -> None:
    with caplog.at_level(logging.ERROR, logger="report_service"):
        with pytest.raises(ReportUnavailableError):
            fetch_inspection("insp-0001", fetcher=_failing_fetcher)
    assert "Inspection source failed" in caplog.text


def test_unknown_form_version_uses_current_checklist(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="report_service"):
        table = report_service.checklist_for({"form_version": "99"})
    assert table is CURRENT_CHECKLIST
    assert "No checklist registered" in caplog.text


# =============================================================================
# RENDERING
# =============================================================================

def test_prepare_report_loads_images(sample_inspection) -> None:
    prepared = prepare_report(sample_inspection)
    assert prepared.images.for_row(0) is not None
    assert prepared.images.supervisor is not None
    assert prepared.images.mechanic is None


def test_prepare_report_can_skip_images(sample_inspection) -> None:
    prepared = prepare_report(sample_inspection, load_images=False)
    assert prepared.images.for_row(0) is None
    assert prepared.images.supervisor is None


def test_export_report_returns_pdf_and_filename(sample_inspection) -> None:
    pdf_bytes, filename = export_report(sample_inspection)
    assert pdf_bytes.startswith(b"%PDF")
    assert filename == "FOR-ATA-057_LIM.pdf"


def test_export_filename_without_form_code(sample_inspection) -> None:
    sample_inspection["form_code"] = None
    _, filename = export_report(sample_inspection)
    assert filename == "Inspeccion_LIM.pdf"


def test_preview_by_id(stored_inspection) -> None:
    html = report_service.render_preview_for(stored_inspection, compact=True)
    assert "TLM-AR-002" in html
    assert '<body class="compact">' in html


def test_export_by_id(stored_inspection) -> None:
    pdf_bytes, filename = report_service.render_export_for(stored_inspection)
    assert pdf_bytes.startswith(b"%PDF")
    assert filename == "FOR-ATA-057_LIM.pdf"


def test_payload_has_model_and_layout(sample_inspection) -> None:
    payload = report_payload(sample_inspection, LayoutOptions(pad_rows=False, header_mode=HeaderMode.CODES))

    assert payload["model"]["station"] == "LIM"
    assert payload["model"]["inspection_date"] == "05/01/2024"
    assert payload["model"]["observations_derived"] is True
    assert payload["layout"]["header_mode"] == "codes"
    assert payload["layout"]["header_cells"][2] == "CHK-01"
    kinds = [r["kind"] for r in payload["layout"]["rows"]]
    assert kinds.count("equipment") == 2


# =============================================================================
# LISTING
# =============================================================================

def test_summary_flags_pending_observations(sample_inspection, explicit_observations) -> None:
    summary = inspection_summary(sample_inspection)
    assert summary["equipment_count"] == 2
    assert summary["observations_derived"] is True
    assert summary["has_pending_observations"] is True

    explicit_observations[0]["obs_maintenance"] = "Foco reemplazado"
    sample_inspection["observations"] = explicit_observations
    summary = inspection_summary(sample_inspection)
    assert summary["observations_derived"] is False
    assert summary["observation_count"] == 2
    assert summary["has_pending_observations"] is False
