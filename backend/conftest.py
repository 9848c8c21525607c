"""
Shared pytest fixtures.

The database path and report settings are pinned before any backend module
is imported, so tests never touch a developer's inspections.db.
"""

import base64
import io
import os
import tempfile
import time

_TEST_DB_DIR = tempfile.mkdtemp(prefix="forata057-tests-")
os.environ["DATABASE_PATH"] = os.path.join(_TEST_DB_DIR, "test_inspections.db")
os.environ["REPORT_LOGO_PATH"] = ""
os.environ["REPORT_FONT_PATH"] = ""
os.environ["DERIVED_OBSERVATION_TEXT"] = "item not compliant"

import pytest
from PIL import Image


def make_png(size=(40, 20), color=(0, 0, 0, 255), mode="RGBA") -> bytes:
    im = Image.new(mode, size, color if mode == "RGBA" else color[:3])
    out = io.BytesIO()
    im.save(out, format="PNG")
    return out.getvalue()


def to_data_url(data: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(data).decode("ascii")


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def png_data_url(png_bytes) -> str:
    return to_data_url(png_bytes)


@pytest.fixture
def sample_inspection(png_data_url) -> dict:
    """Two equipment rows, no explicit observations, one missing sign-off image."""
    return {
        "id": "insp-0001",
        "form_code": "FOR-ATA-057",
        "station": "LIM",
        "inspection_date": "2024-01-05",
        "inspector_name": "Ana Torres",
        "status": "completed",
        "supervisor_name": "Carlos Ruiz",
        "supervisor_signature_url": png_data_url,
        "supervisor_signature_date": "2024-01-05T18:30:00",
        "mechanic_name": "Luis Paredes",
        "mechanic_signature_url": None,
        "mechanic_signature_date": None,
        "equipment": [
            {
                "code": "TLM-AR-002",
                "hour": None,
                "updated_at": "2024-01-05T07:45:00",
                "checklist_data": {
                    "CHK-01": {"status": "conforme", "observations": ""},
                    "CHK-02": {"status": "no_conforme", "observations": ""},
                    "CHK-03": {"status": "no_aplica", "observations": ""},
                    "CHK-04": {"status": "conforme", "observations": "Sticker despegado"},
                },
                "inspector_signature_url": png_data_url,
            },
            {
                "code": "TLM-FT-010",
                "hour": "08:10",
                "checklist_data": {
                    "CHK-01": {"status": "conforme"},
                    "CHK-14": {"status": "no_aplica"},
                },
                "inspector_signature_url": None,
            },
        ],
        "observations": [],
    }


@pytest.fixture
def explicit_observations() -> list:
    return [
        {"obs_id": "CHK-07", "equipment_code": "TLM-FT-010",
         "obs_operator": "Circulina no enciende", "obs_maintenance": None},
        {"obs_id": "CHK-11", "equipment_code": "TLM-AR-002",
         "obs_operator": "Neumático trasero gastado", "obs_maintenance": "Cambiado 06/01"},
    ]


@pytest.fixture
def host_timezone(monkeypatch):
    """Switch the process time zone; restored after the test."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")

    def switch(name: str):
        monkeypatch.setenv("TZ", name)
        time.tzset()

    yield switch
    monkeypatch.undo()
    time.tzset()
