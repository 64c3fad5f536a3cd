"""
Execution Log Model
Database model for workflow run records
"""

from sqlalchemy import Column, String, Text, JSON, DateTime, ForeignKey
from datetime import datetime
from . import Base, generate_id


class WorkflowExecutionLog(Base):
    """
    Execution Log Model

    One row per (workflow, business) run. Created as `pending` when the job
    is enqueued, moved to `running` by the worker and finally to `success` or
    `failed`. Once completed_at is set the row is not touched again; a retry
    of the same job writes a new row.
    """
    __tablename__ = "workflow_execution_logs"

    id = Column(String(36), primary_key=True, default=generate_id)
    workflow_id = Column(String(36), ForeignKey("automation_workflows.id"), nullable=False, index=True)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Status: pending, running, success, failed
    status = Column(String(50), nullable=False, default="pending", index=True)

    # Ordered transcript shown in the dashboard terminal
    logs = Column(JSON, nullable=False, default=list)

    # Final variable snapshot
    state = Column(JSON, nullable=True)

    error = Column(Text, nullable=True)

    # Set when this run resumes a suspended one (delay node)
    resumed_from_id = Column(String(36), nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<WorkflowExecutionLog(id={self.id}, workflow_id={self.workflow_id}, status='{self.status}')>"
