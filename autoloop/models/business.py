"""
Business Model
Scraped business listings that workflows run against
"""

from sqlalchemy import Column, String, Text, Float, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime
from typing import Any, Dict
from . import Base, generate_id


class Business(Base):
    """
    Business Model

    One row per scraped listing. (user_id, name, address) is unique so the
    scraping worker can insert repeatedly without creating duplicates.
    """
    __tablename__ = "businesses"
    __table_args__ = (
        UniqueConstraint("user_id", "name", "address", name="uq_businesses_user_name_address"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String(500), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    website = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    category = Column(String(255), nullable=True, index=True)
    rating = Column(Float, nullable=True)
    review_count = Column(Integer, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    source = Column(String(50), nullable=True)  # google-maps, linkedin, ...

    # Outreach state
    email_sent = Column(Boolean, default=False, nullable=False, index=True)
    email_sent_at = Column(DateTime, nullable=True)
    email_status = Column(String(50), nullable=True)  # sent, failed

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_snapshot(self) -> Dict[str, Any]:
        """
        Business data as seen by workflow nodes.

        Keys are camelCase because user-authored tokens and conditions
        (`{business.reviewCount}`, `emailSent == "false"`) use the names the
        dashboard shows.
        """
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "website": self.website,
            "address": self.address,
            "category": self.category,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "source": self.source,
            "emailSent": self.email_sent,
            "emailSentAt": self.email_sent_at.isoformat() if self.email_sent_at else None,
            "emailStatus": self.email_status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Business(id={self.id}, name='{self.name}')>"
