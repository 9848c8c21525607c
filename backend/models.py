"""
SQLAlchemy models for the FOR-ATA-057 inspection records.

These tables back the read-only ``fetch inspection`` interface the report
engine consumes. Dates that must render without timezone shifts
(inspection date, sign-off timestamps) are stored as the source strings.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


class Inspection(Base):
    """
    Represents one 360° GSE inspection (one FOR-ATA-057 sheet).
    """
    __tablename__ = 'inspections'

    id = Column(String(36), primary_key=True)  # UUID
    form_code = Column(String(50), nullable=True)  # e.g., "FOR-ATA-057"
    station = Column(String(50), nullable=True)
    inspection_date = Column(String(50), nullable=True)  # "2024-01-05" or ISO date-time, kept verbatim
    inspection_type = Column(String(50), nullable=True)  # "inicial", "periodica", "post_mantenimiento"
    inspector_name = Column(String(255), nullable=True)
    status = Column(String(50), default='draft')

    # Sign-off blocks
    supervisor_name = Column(String(255), nullable=True)
    supervisor_signature_url = Column(Text, nullable=True)
    supervisor_signature_date = Column(String(50), nullable=True)
    mechanic_name = Column(String(255), nullable=True)
    mechanic_signature_url = Column(Text, nullable=True)
    mechanic_signature_date = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships (source order is insertion order)
    equipment = relationship("InspectionEquipment", back_populates="inspection",
                             order_by="InspectionEquipment.id",
                             cascade="all, delete-orphan")
    observations = relationship("Observation", back_populates="inspection",
                                order_by="Observation.id",
                                cascade="all, delete-orphan")

    def to_dict(self):
        """Convert to dictionary in the shape the report engine consumes."""
        return {
            "id": self.id,
            "form_code": self.form_code,
            "station": self.station,
            "inspection_date": self.inspection_date,
            "inspection_type": self.inspection_type,
            "inspector_name": self.inspector_name,
            "status": self.status,
            "supervisor_name": self.supervisor_name,
            "supervisor_signature_url": self.supervisor_signature_url,
            "supervisor_signature_date": self.supervisor_signature_date,
            "mechanic_name": self.mechanic_name,
            "mechanic_signature_url": self.mechanic_signature_url,
            "mechanic_signature_date": self.mechanic_signature_date,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "equipment": [e.to_dict() for e in self.equipment],
            "observations": [o.to_dict() for o in self.observations],
        }


class InspectionEquipment(Base):
    """
    Represents one equipment row of an inspection with its checklist results.
    """
    __tablename__ = 'inspection_equipment'

    id = Column(Integer, primary_key=True, autoincrement=True)
    inspection_id = Column(String(36), ForeignKey('inspections.id'), nullable=False)

    code = Column(String(50), nullable=False)  # e.g., "TLM-AR-002"
    type = Column(String(100), nullable=True)
    hour = Column(String(50), nullable=True)
    # {"CHK-01": {"status": "conforme", "observations": ""}, ...}
    checklist_data = Column(JSON, default=dict)
    inspector_signature_url = Column(Text, nullable=True)
    order_index = Column(Integer, default=0)  # advisory only

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    inspection = relationship("Inspection", back_populates="equipment")

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "inspection_id": self.inspection_id,
            "code": self.code,
            "type": self.type,
            "hour": self.hour,
            "checklist_data": self.checklist_data or {},
            "inspector_signature_url": self.inspector_signature_url,
            "order_index": self.order_index,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Observation(Base):
    """
    Represents an explicit operator observation and its maintenance reply.
    """
    __tablename__ = 'observations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    inspection_id = Column(String(36), ForeignKey('inspections.id'), nullable=False)

    obs_id = Column(String(20), nullable=True)  # checklist item code, e.g., "CHK-02"
    equipment_code = Column(String(50), nullable=True)
    obs_operator = Column(Text, nullable=True)
    obs_maintenance = Column(Text, nullable=True)  # NULL until maintenance replies
    order_index = Column(Integer, default=0)  # advisory only

    created_at = Column(DateTime, default=datetime.utcnow)

    inspection = relationship("Inspection", back_populates="observations")

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "inspection_id": self.inspection_id,
            "obs_id": self.obs_id,
            "equipment_code": self.equipment_code,
            "obs_operator": self.obs_operator,
            "obs_maintenance": self.obs_maintenance,
            "order_index": self.order_index,
        }
