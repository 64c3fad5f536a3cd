"""
Notification sink

Writes dashboard notifications. Delivery (toasts, email digests) is handled
by the web app reading the table.
"""

import logging

from sqlalchemy.orm import Session

from ...models.notification import Notification

logger = logging.getLogger(__name__)

LEVELS = ("info", "success", "warning", "error")
CATEGORIES = ("workflow", "email", "scraping", "system")


class NotificationService:

    def __init__(self, db_session: Session):
        self.db_session = db_session

    def create(
        self,
        user_id: str,
        title: str,
        message: str,
        level: str = "info",
        category: str = "system",
    ) -> Notification:
        if level not in LEVELS:
            raise ValueError(f"Invalid notification level: {level}")
        if category not in CATEGORIES:
            raise ValueError(f"Invalid notification category: {category}")

        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            level=level,
            category=category,
        )
        self.db_session.add(notification)
        self.db_session.commit()
        logger.info(f"Notification created for user {user_id}: {title} ({level})")
        return notification
