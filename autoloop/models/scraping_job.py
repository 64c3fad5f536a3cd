"""
Scraping Job Model
"""

from sqlalchemy import Column, String, Text, Integer, JSON, DateTime, ForeignKey
from datetime import datetime
from . import Base, generate_id


class ScrapingJob(Base):
    """
    Scraping Job Model

    The dashboard writes `status` to pause/resume/stop a running job;
    the scraping worker re-reads it on every loop iteration.

    Status: pending, running, paused, stopped, completed, failed
    """
    __tablename__ = "scraping_jobs"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    keywords = Column(JSON, nullable=False, default=list)
    location = Column(String(255), nullable=True)
    sources = Column(JSON, nullable=False, default=list)

    status = Column(String(50), nullable=False, default="pending", index=True)
    businesses_found = Column(Integer, default=0, nullable=False)
    progress = Column(Integer, default=0, nullable=False)
    error = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ScrapingJob(id={self.id}, status='{self.status}', found={self.businesses_found})>"
