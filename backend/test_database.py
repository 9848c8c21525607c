import uuid

import pytest
from sqlalchemy import event

import database as db


@pytest.fixture
def stored_ids(sample_inspection):
    ids = []
    for _ in range(3):
        sample_inspection["id"] = str(uuid.uuid4())
        ids.append(db.save_inspection(sample_inspection))
    yield ids
    for inspection_id in ids:
        db.delete_inspection(inspection_id)


@pytest.fixture
def statements():
    """SQL statements executed on the engine while the test runs."""
    seen = []

    def record(conn, cursor, statement, parameters, context, executemany):
        seen.append(statement)

    event.listen(db.engine, "before_cursor_execute", record)
    yield seen
    event.remove(db.engine, "before_cursor_execute", record)


def test_listing_loads_children_without_per_row_queries(stored_ids, statements) -> None:
    result = db.list_inspections(page=1, per_page=50)

    listed = {i["id"]: i for i in result["inspections"]}
    for inspection_id in stored_ids:
        assert [e["code"] for e in listed[inspection_id]["equipment"]] == ["TLM-AR-002", "TLM-FT-010"]
    selects = [s for s in statements if s.lstrip().upper().startswith("SELECT")]
    # count, inspections, equipment, observations
    assert len(selects) == 4


def test_save_get_delete_round_trip(sample_inspection) -> None:
    sample_inspection["id"] = str(uuid.uuid4())
    inspection_id = db.save_inspection(sample_inspection)

    stored = db.get_inspection(inspection_id)
    assert stored["inspector_name"] == "Ana Torres"
    assert stored["equipment"][1]["hour"] == "08:10"
    assert isinstance(stored["equipment"][0]["updated_at"], str)

    assert db.delete_inspection(inspection_id) is True
    assert db.get_inspection(inspection_id) is None
    assert db.delete_inspection(inspection_id) is False
