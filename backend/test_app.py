import uuid

import pytest
from sqlalchemy.exc import OperationalError

import database as db
from app import app


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def stored_id(sample_inspection) -> str:
    sample_inspection["id"] = str(uuid.uuid4())
    inspection_id = db.save_inspection(sample_inspection)
    yield inspection_id
    db.delete_inspection(inspection_id)


def _locked(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("database is locked"))


def test_health(client) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_list_inspections(client, stored_id) -> None:
    response = client.get("/api/inspections?limit=50")
    assert response.status_code == 200
    records = {r["id"]: r for r in response.get_json()["records"]}
    assert records[stored_id]["station"] == "LIM"
    assert records[stored_id]["has_pending_observations"] is True


def test_report_model_json(client, stored_id) -> None:
    response = client.get(f"/api/inspections/{stored_id}/report-model?pad=0&header_mode=codes")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["model"]["inspection_id"] == stored_id
    assert payload["layout"]["header_mode"] == "codes"
    assert len(payload["layout"]["rows"]) < 20


def test_report_preview_html(client, stored_id) -> None:
    response = client.get(f"/api/inspections/{stored_id}/report?compact=1&print=true")
    assert response.status_code == 200
    assert response.mimetype == "text/html"
    body = response.get_data(as_text=True)
    assert '<body class="compact">' in body
    assert "waitThenExport" in body
    assert "TLM-FT-010" in body


def test_export_pdf_download(client, stored_id) -> None:
    response = client.get(f"/api/inspections/{stored_id}/export/pdf")
    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    assert response.data.startswith(b"%PDF")
    assert 'filename="FOR-ATA-057_LIM.pdf"' in response.headers["Content-Disposition"]


@pytest.mark.parametrize("path", ["report-model", "report", "export/pdf"])
def test_unknown_inspection_is_404(client, path) -> None:
    response = client.get(f"/api/inspections/missing/{path}")
    assert response.status_code == 404
    assert response.get_json()["error"] == "Inspection not found"


@pytest.mark.parametrize("path", ["report-model", "report", "export/pdf"])
def test_source_failure_is_503(client, monkeypatch, path) -> None:
    monkeypatch.setattr(db, "get_inspection", _locked)
    response = client.get(f"/api/inspections/insp-0001/{path}")
    assert response.status_code == 503
    assert response.get_json()["error"] == "Report unavailable"


def test_listing_failure_is_503(client, monkeypatch) -> None:
    monkeypatch.setattr(db, "list_inspections", _locked)
    response = client.get("/api/inspections")
    assert response.status_code == 503
