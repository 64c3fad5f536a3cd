"""
Trigger Models
Scheduled and event-driven initiation of workflow runs
"""

from sqlalchemy import Column, String, Boolean, JSON, DateTime, ForeignKey
from datetime import datetime
from . import Base, generate_id


class WorkflowTrigger(Base):
    """
    Trigger definition polled by the trigger scheduler.

    trigger_type: schedule, new_business, delay_completion
    config examples:
        {"cron": "0 9 * * 1-5"}
        {"targetBusinessTypes": ["Restaurant"], "minRating": 4}
        {"delayHours": 48}
    """
    __tablename__ = "workflow_triggers"

    id = Column(String(36), primary_key=True, default=generate_id)
    workflow_id = Column(String(36), ForeignKey("automation_workflows.id"), nullable=False, index=True)
    trigger_type = Column(String(50), nullable=False)
    config = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    last_run_at = Column(DateTime, nullable=True)
    next_run_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<WorkflowTrigger(id={self.id}, type='{self.trigger_type}', active={self.is_active})>"


class WorkflowTriggerExecution(Base):
    """One row per business a trigger firing handed to the workflow queue."""
    __tablename__ = "workflow_trigger_executions"

    id = Column(String(36), primary_key=True, default=generate_id)
    trigger_id = Column(String(36), ForeignKey("workflow_triggers.id"), nullable=False, index=True)
    workflow_id = Column(String(36), ForeignKey("automation_workflows.id"), nullable=False, index=True)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=True, index=True)
    execution_id = Column(String(36), ForeignKey("workflow_execution_logs.id"), nullable=True)

    # Status: queued, failed
    status = Column(String(50), nullable=False)
    error = Column(String(1000), nullable=True)
    executed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<WorkflowTriggerExecution(id={self.id}, trigger_id={self.trigger_id}, status='{self.status}')>"
