import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String, Uuid
from sqlalchemy.sql import func

from database import Base

SESSION_RUNNING = "running"
SESSION_COMPLETED = "completed"
SESSION_PARTIAL = "partial"
SESSION_FAILED = "failed"


class SyncSession(Base):
    __tablename__ = "employes_sync_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_type = Column(String, nullable=False, default="hybrid_sync")
    status = Column(String, nullable=False, default=SESSION_RUNNING, index=True)
    source = Column(String, nullable=True)
    triggered_by = Column(String, nullable=True)
    total_records = Column(Integer, nullable=True)
    successful_records = Column(Integer, nullable=True)
    failed_records = Column(Integer, nullable=True)
    details = Column(JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
