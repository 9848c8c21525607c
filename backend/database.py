"""
Database connection and session management for the inspection records.
"""

import logging
import uuid

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session, selectinload
from contextlib import contextmanager

from config import DATABASE_URL
from models import (
    Base,
    Inspection,
    InspectionEquipment,
    Observation
)

logger = logging.getLogger(__name__)

# Create engine
engine = create_engine(DATABASE_URL, echo=False)

# Create session factory
session_factory = sessionmaker(bind=engine)
Session = scoped_session(session_factory)


def init_db():
    """Initialize the database by creating all tables."""
    Base.metadata.create_all(engine)
    logger.info(f"Database initialized at {DATABASE_URL}")


@contextmanager
def get_session():
    """
    Context manager for database sessions.

    Usage:
        with get_session() as session:
            session.query(Inspection).all()
    """
    session = Session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        raise e
    finally:
        session.close()


def save_inspection(data: dict) -> str:
    """
    Save an inspection with its equipment and observation children.

    Args:
        data: Inspection dictionary in the ``fetch_inspection`` shape
              (``equipment`` and ``observations`` lists included)

    Returns:
        The inspection ID
    """
    inspection_id = data.get("id") or str(uuid.uuid4())

    with get_session() as session:
        inspection = Inspection(
            id=inspection_id,
            form_code=data.get("form_code"),
            station=data.get("station"),
            inspection_date=data.get("inspection_date"),
            inspection_type=data.get("inspection_type"),
            inspector_name=data.get("inspector_name"),
            status=data.get("status", "draft"),
            supervisor_name=data.get("supervisor_name"),
            supervisor_signature_url=data.get("supervisor_signature_url"),
            supervisor_signature_date=data.get("supervisor_signature_date"),
            mechanic_name=data.get("mechanic_name"),
            mechanic_signature_url=data.get("mechanic_signature_url"),
            mechanic_signature_date=data.get("mechanic_signature_date"),
        )
        session.add(inspection)

        for idx, eq_data in enumerate(data.get("equipment", [])):
            equipment = InspectionEquipment(
                inspection_id=inspection_id,
                code=eq_data.get("code"),
                type=eq_data.get("type"),
                hour=eq_data.get("hour"),
                checklist_data=eq_data.get("checklist_data", {}),
                inspector_signature_url=eq_data.get("inspector_signature_url"),
                order_index=eq_data.get("order_index", idx),
            )
            session.add(equipment)

        for idx, obs_data in enumerate(data.get("observations", [])):
            observation = Observation(
                inspection_id=inspection_id,
                obs_id=obs_data.get("obs_id"),
                equipment_code=obs_data.get("equipment_code"),
                obs_operator=obs_data.get("obs_operator"),
                obs_maintenance=obs_data.get("obs_maintenance"),
                order_index=obs_data.get("order_index", idx),
            )
            session.add(observation)

    return inspection_id


def get_inspection(inspection_id: str) -> dict:
    """
    Get an inspection by ID with its equipment and observations.

    This is the read-only ``fetch_inspection`` interface of the report engine.

    Args:
        inspection_id: The inspection ID

    Returns:
        Dictionary representation of the inspection, or None if not found
    """
    with get_session() as session:
        inspection = session.query(Inspection)\
            .options(selectinload(Inspection.equipment), selectinload(Inspection.observations))\
            .filter(Inspection.id == inspection_id)\
            .first()
        if inspection:
            return inspection.to_dict()
        return None


def list_inspections(page: int = 1, per_page: int = 10) -> dict:
    """
    Get all inspections with pagination.

    Args:
        page: Page number (1-indexed)
        per_page: Number of items per page

    Returns:
        Dictionary with inspections and pagination info
    """
    with get_session() as session:
        total = session.query(Inspection).count()
        offset = (page - 1) * per_page

        inspections = session.query(Inspection)\
            .options(selectinload(Inspection.equipment), selectinload(Inspection.observations))\
            .order_by(Inspection.created_at.desc())\
            .offset(offset)\
            .limit(per_page)\
            .all()

        return {
            "inspections": [i.to_dict() for i in inspections],
            "pagination": {
                "page": page,
                "per_page": per_page,
                "total": total,
                "pages": (total + per_page - 1) // per_page
            }
        }


def delete_inspection(inspection_id: str) -> bool:
    """
    Delete an inspection by ID.

    Args:
        inspection_id: The inspection ID

    Returns:
        True if deleted, False if not found
    """
    with get_session() as session:
        inspection = session.query(Inspection).filter(Inspection.id == inspection_id).first()
        if inspection:
            session.delete(inspection)
            session.commit()
            return True
        return False


# Initialize database on import
init_db()
