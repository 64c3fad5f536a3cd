"""
Workflow Model
Database model for automation workflow definitions
"""

from sqlalchemy import Column, String, Text, Integer, Boolean, JSON, DateTime, ForeignKey
from datetime import datetime
from . import Base, generate_id


class Workflow(Base):
    """
    Workflow Model

    Stores the visual builder's graph as two JSON columns.

    nodes:
        [
          {"id": "n1", "type": "custom", "position": {...},
           "data": {"type": "start", "label": "Start", "config": {}}},
          {"id": "n2", "data": {"type": "condition", "label": "Has email?",
                                "config": {"condition": "email"}}},
          ...
        ]
    edges:
        [
          {"id": "e1", "source": "n1", "target": "n2"},
          {"id": "e2", "source": "n2", "target": "n3", "sourceHandle": "true"}
        ]
    """
    __tablename__ = "automation_workflows"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    target_business_type = Column(String(255), nullable=True)
    keywords = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=False, nullable=False)

    nodes = Column(JSON, nullable=False, default=list)
    edges = Column(JSON, nullable=False, default=list)

    last_run_at = Column(DateTime, nullable=True)
    execution_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def graph_definition(self):
        return {"nodes": self.nodes or [], "edges": self.edges or []}

    def __repr__(self):
        return f"<Workflow(id={self.id}, name='{self.name}')>"
