"""
Email outreach helpers shared by the template node and the email queue.

- render_template: resolver tokens plus the legacy template placeholders
- duplicate / cooldown / daily-cap queries over email_logs
- record_send: writes the email log row and the business outreach state
"""

import logging
import os
from datetime import datetime, timedelta, time
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.business import Business
from ..models.email import EmailLog, EmailTemplate
from .context import ExecutionContext
from .integrations.gmail import SendResult
from .resolver import interpolate

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 50

# Placeholders templates used before `{business.x}` tokens existed
LEGACY_PLACEHOLDERS = {
    "{brand_name}": "name",
    "{email}": "email",
    "{phone}": "phone",
    "{website}": "website",
    "{address}": "address",
    "{category}": "category",
}


def render_template(text: str, ctx: ExecutionContext, user=None) -> str:
    """
    Render a template subject or body.

    Example:
        >>> render_template("Hi {brand_name}, I'm {sender_name}", ctx, user)
        "Hi Luigi's, I'm Ana"
    """
    if not text:
        return ""
    for placeholder, key in LEGACY_PLACEHOLDERS.items():
        value = ctx.business_data.get(key)
        text = text.replace(placeholder, "" if value is None else str(value))
    if user is not None:
        text = text.replace("{sender_name}", user.name or "")
        text = text.replace("{sender_email}", user.email or "")
    return interpolate(text, ctx)


def get_daily_limit() -> int:
    return int(os.getenv("EMAIL_DAILY_LIMIT", DEFAULT_DAILY_LIMIT))


def get_timezone() -> ZoneInfo:
    return ZoneInfo(os.getenv("APP_TIMEZONE", "UTC"))


def has_sent_template(db: Session, business_id: str, template_id: str) -> bool:
    return db.query(EmailLog.id).filter(
        EmailLog.business_id == business_id,
        EmailLog.template_id == template_id,
        EmailLog.status == "sent",
    ).first() is not None


def sent_within_days(db: Session, business_id: str, days: int, now: Optional[datetime] = None) -> bool:
    """Any template counts."""
    since = (now or datetime.utcnow()) - timedelta(days=days)
    return db.query(EmailLog.id).filter(
        EmailLog.business_id == business_id,
        EmailLog.status == "sent",
        EmailLog.sent_at >= since,
    ).first() is not None


def _to_naive_utc(dt: datetime) -> datetime:
    return dt.astimezone(ZoneInfo("UTC")).replace(tzinfo=None)


def local_day_bounds(now: Optional[datetime] = None, tz: Optional[ZoneInfo] = None):
    """
    Start of the current local day and the next local midnight, both as
    naive UTC datetimes (the storage convention).
    """
    tz = tz or get_timezone()
    now = now or datetime.utcnow()
    local_now = now.replace(tzinfo=ZoneInfo("UTC")).astimezone(tz)
    local_start = datetime.combine(local_now.date(), time.min, tzinfo=tz)
    local_next = datetime.combine(local_now.date() + timedelta(days=1), time.min, tzinfo=tz)
    return _to_naive_utc(local_start), _to_naive_utc(local_next)


def count_sent_today(db: Session, user_id: str, now: Optional[datetime] = None) -> int:
    day_start, _ = local_day_bounds(now)
    return db.query(func.count(EmailLog.id)).filter(
        EmailLog.user_id == user_id,
        EmailLog.status == "sent",
        EmailLog.sent_at >= day_start,
    ).scalar() or 0


def record_send(
    db: Session,
    user_id: str,
    business: Optional[Business],
    business_id: str,
    template: Optional[EmailTemplate],
    subject: str,
    body: str,
    result: SendResult,
) -> EmailLog:
    """Persist the send attempt and the business outreach state."""
    now = datetime.utcnow()
    log = EmailLog(
        user_id=user_id,
        business_id=business_id,
        template_id=template.id if template else None,
        subject=subject,
        body=body,
        status="sent" if result.success else "failed",
        error_message=None if result.success else result.error,
        sent_at=now if result.success else None,
    )
    db.add(log)

    if business is not None:
        if result.success:
            business.email_sent = True
            business.email_sent_at = now
            business.email_status = "sent"
        else:
            business.email_status = "failed"

    db.commit()
    return log
