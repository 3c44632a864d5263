import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.sql import func

from database import Base


class RetryLogEntry(Base):
    __tablename__ = "employes_retry_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    raw_data_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    endpoint = Column(String, nullable=False)
    retry_attempt = Column(Integer, nullable=False)
    success = Column(Boolean, nullable=False)
    http_status_code = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    triggered_by = Column(String, nullable=False, default="retry_handler")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
