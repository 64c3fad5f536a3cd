"""
Notification Model
Dashboard notifications written by the engine and the workers
"""

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey
from datetime import datetime
from . import Base, generate_id


class Notification(Base):
    """
    level: info, success, warning, error
    category: workflow, email, scraping, system
    """
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    level = Column(String(20), nullable=False, default="info")
    category = Column(String(50), nullable=False, default="system")
    is_read = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<Notification(id={self.id}, title='{self.title}', level='{self.level}')>"
