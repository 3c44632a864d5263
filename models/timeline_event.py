import uuid

from sqlalchemy import JSON, Column, Date, DateTime, String, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from database import Base

EVENT_EMPLOYEE_ADDED = "employee_added"
EVENT_CONTRACT_STARTED = "contract_started"
EVENT_SALARY_INCREASE = "salary_increase"
EVENT_SALARY_DECREASE = "salary_decrease"
EVENT_CONTRACT_RENEWED = "contract_renewed"
EVENT_HOURS_CHANGE = "hours_change"


class TimelineEvent(Base):
    __tablename__ = "employes_timeline_v2"
    __table_args__ = (
        UniqueConstraint("employee_id", "event_type", "event_date", name="uq_employes_timeline_event"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    employee_id = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)
    event_date = Column(Date, nullable=False)
    event_title = Column(String, nullable=False)
    event_description = Column(Text, nullable=True)
    event_data = Column(JSON, nullable=False, default=dict)
    change_id = Column(Uuid(as_uuid=True), nullable=True)
    change_source = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
