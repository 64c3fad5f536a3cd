"""
Models module - SQLAlchemy database models
"""

import uuid

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def generate_id() -> str:
    """Primary keys are string UUIDs, matching the ids the dashboard already stores."""
    return str(uuid.uuid4())


# Import models after Base is defined to avoid circular imports
from .user import User  # noqa: E402
from .business import Business  # noqa: E402
from .email import EmailTemplate, EmailLog  # noqa: E402
from .workflow import Workflow  # noqa: E402
from .execution import WorkflowExecutionLog  # noqa: E402
from .trigger import WorkflowTrigger, WorkflowTriggerExecution  # noqa: E402
from .scraping_job import ScrapingJob  # noqa: E402
from .notification import Notification  # noqa: E402

__all__ = [
    "Base",
    "generate_id",
    "User",
    "Business",
    "EmailTemplate",
    "EmailLog",
    "Workflow",
    "WorkflowExecutionLog",
    "WorkflowTrigger",
    "WorkflowTriggerExecution",
    "ScrapingJob",
    "Notification",
]
