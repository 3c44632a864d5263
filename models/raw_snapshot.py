import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, Integer, String, Text, Uuid, text
from sqlalchemy.sql import func

from database import Base

ENDPOINT_EMPLOYEE = "/employee"
ENDPOINT_EMPLOYMENTS = "/employments"
TRACKED_ENDPOINTS = (ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS)


class RawSnapshot(Base):
    """One collected payload version per (employee, endpoint)."""

    __tablename__ = "employes_raw_data"
    __table_args__ = (
        Index(
            "uq_employes_raw_data_latest",
            "employee_id",
            "endpoint",
            unique=True,
            postgresql_where=text("is_latest"),
            sqlite_where=text("is_latest = 1"),
        ),
        Index("ix_employes_raw_data_partial", "is_partial", "retry_count"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    employee_id = Column(String, nullable=False, index=True)
    endpoint = Column(String, nullable=False, index=True)
    api_response = Column(JSON, nullable=False, default=dict)
    data_hash = Column(String(64), nullable=False)

    collected_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_verified_at = Column(DateTime(timezone=True), nullable=True)
    effective_from = Column(DateTime(timezone=True), nullable=True)
    effective_to = Column(DateTime(timezone=True), nullable=True)
    is_latest = Column(Boolean, nullable=False, default=True)

    is_partial = Column(Boolean, nullable=False, default=False)
    retry_count = Column(Integer, nullable=False, default=0)
    last_retry_at = Column(DateTime(timezone=True), nullable=True)
    retry_succeeded_at = Column(DateTime(timezone=True), nullable=True)
    http_status_code = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    collection_issues = Column(JSON, nullable=True)
    confidence_score = Column(Float, nullable=False, default=1.0)

    sync_session_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
