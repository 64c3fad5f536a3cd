"""
User Model
Account owning businesses, templates and workflows, plus the credentials the engine needs
"""

from sqlalchemy import Column, String, Text, DateTime
from datetime import datetime
from . import Base, generate_id


class User(Base):
    """
    User Model

    Credentials consumed by the workflow engine:
    - access_token / refresh_token: Google OAuth tokens (Gmail send)
    - gemini_api_key: optional per-user AI key (falls back to GEMINI_API_KEY)
    - linkedin_cookie: LinkedIn `li_at` session cookie
    - phone: WhatsApp number for failure alerts
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)

    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    gemini_api_key = Column(Text, nullable=True)
    linkedin_cookie = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"
