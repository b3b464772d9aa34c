"""Service run model - execution records of tracked service methods."""

from sqlalchemy import Column, String, Integer, DateTime, Text, Boolean, CheckConstraint
from datetime import datetime
import uuid

from src.config.database import Base, JSONType


class ServiceRun(Base):
    """
    One row per BaseService.track_execution call.

    Written for token refresh runs, queue reconciliation, scheduled-post
    sync and job cleanup. status goes running -> completed | failed.
    """

    __tablename__ = "service_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    service_name = Column(String(100), nullable=False, index=True)  # 'TokenManager'
    method_name = Column(String(100), nullable=False)  # 'refresh_all_expiring'

    user_id = Column(String(36))
    triggered_by = Column(String(50), default="system")  # system, scheduler, admin, cli, startup

    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime)
    duration_ms = Column(Integer)

    status = Column(String(50), nullable=False, default="running", index=True)
    success = Column(Boolean)

    result_summary = Column(JSONType)  # e.g. {"refreshed": 3, "failed": 1}
    error_type = Column(String(100))
    error_message = Column(Text)
    stack_trace = Column(Text)

    input_params = Column(JSONType)
    context_metadata = Column(JSONType)

    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'completed', 'failed')",
            name="check_service_run_status",
        ),
    )

    def __repr__(self):
        return f"<ServiceRun {self.service_name}.{self.method_name} {self.status}>"
