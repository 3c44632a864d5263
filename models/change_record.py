import uuid

from sqlalchemy import JSON, Column, Date, DateTime, Float, String, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from database import Base

CHANGE_SALARY = "salary_change"
CHANGE_HOURS = "hours_change"
CHANGE_CONTRACT = "contract_change"
CHANGE_TYPES = (CHANGE_SALARY, CHANGE_HOURS, CHANGE_CONTRACT)


class ChangeRecord(Base):
    """Append-only audit row for a transition between two adjacent periods."""

    __tablename__ = "employes_changes"
    __table_args__ = (
        UniqueConstraint(
            "employee_id",
            "change_type",
            "field_name",
            "effective_date",
            name="uq_employes_changes_transition",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    employee_id = Column(String, nullable=False, index=True)
    change_type = Column(String, nullable=False, index=True)
    field_name = Column(String, nullable=False)
    effective_date = Column(Date, nullable=False, index=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    change_amount = Column(Float, nullable=True)
    change_percent = Column(Float, nullable=True)
    confidence_score = Column(Float, nullable=False, default=1.0)
    business_impact = Column(String, nullable=True)
    raw_data_id = Column(Uuid(as_uuid=True), nullable=True)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    detected_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
