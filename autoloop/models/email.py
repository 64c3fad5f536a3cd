"""
Email Models
Templates authored in the dashboard and the log of every send attempt
"""

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Index
from datetime import datetime
from . import Base, generate_id


class EmailTemplate(Base):
    """
    Email template with `{...}` placeholders in subject and body.
    """
    __tablename__ = "email_templates"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    subject = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<EmailTemplate(id={self.id}, name='{self.name}')>"


class EmailLog(Base):
    """
    One row per send attempt.

    Duplicate suppression looks up (business_id, template_id, status='sent');
    the cooldown check and the daily cap look at sent_at.
    """
    __tablename__ = "email_logs"
    __table_args__ = (
        Index("ix_email_logs_business_template_status", "business_id", "template_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    template_id = Column(String(36), ForeignKey("email_templates.id"), nullable=True)

    subject = Column(Text, nullable=True)
    body = Column(Text, nullable=True)

    # Status: sent, failed
    status = Column(String(50), nullable=False, index=True)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<EmailLog(id={self.id}, business_id={self.business_id}, status='{self.status}')>"
