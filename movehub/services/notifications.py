"""
Notification service for workflow events.
Events are persisted per recipient and channel; delivery (push, email,
in-app badge) is handled outside this service. Respects user preferences
and quiet hours.
"""
from datetime import datetime, time
from typing import Optional, Dict, Iterable, List
from sqlalchemy.orm import Session
import pytz
import structlog

from ..models.enums import UserRole
from ..models.models import Notification, UserNotificationPreference, User
from ..config import settings

logger = structlog.get_logger(__name__)

CHANNELS = ("push", "email")

# Named workflow events
ORDER_CREATED = "order_created"
COMPANY_ASSIGNED = "company_assigned"
ORDER_SERVICE_DECLINED = "order_service_declined"
OFFER_SENT = "offer_sent"
OFFER_MODIFIED = "offer_modified"
OFFER_CANCELLED = "offer_cancelled"
OFFER_ACCEPTED = "offer_accepted"
OFFER_REJECTED = "offer_rejected"
ASSIGNMENT_CREATED = "assignment_created"
ASSIGNMENT_CANCELLED = "assignment_cancelled"
LEADER_CHANGED = "leader_changed"
REPORT_SUBMITTED = "report_submitted"
SERVICE_STARTED = "service_started"
SERVICE_COMPLETED = "service_completed"
ORDER_CANCELLED = "order_cancelled"
EMPLOYMENT_INVITED = "employment_invited"
EMPLOYMENT_ACCEPTED = "employment_accepted"
EMPLOYMENT_REJECTED = "employment_rejected"
EMPLOYMENT_TERMINATED = "employment_terminated"


def is_quiet_hours(quiet_hours: Optional[Dict], timezone_str: str, now: Optional[datetime] = None) -> bool:
    """
    Check if the given moment falls within the user's quiet hours.

    Args:
        quiet_hours: {start: "HH:MM", end: "HH:MM", timezone: "..."} or None
        timezone_str: Fallback timezone
        now: Override for the current time (timezone-aware)
    """
    if not quiet_hours or not quiet_hours.get("start") or not quiet_hours.get("end"):
        return False

    try:
        tz = pytz.timezone(quiet_hours.get("timezone", timezone_str))
        start_time = time.fromisoformat(quiet_hours["start"])
        end_time = time.fromisoformat(quiet_hours["end"])
    except (pytz.UnknownTimeZoneError, ValueError):
        logger.warning("invalid_quiet_hours", quiet_hours=quiet_hours)
        return False

    current = (now.astimezone(tz) if now else datetime.now(tz)).time()

    # Handle quiet hours that span midnight
    if start_time <= end_time:
        return start_time <= current <= end_time
    return current >= start_time or current <= end_time


def should_send_notification(db: Session, user_id: int, channel: str, timezone_str: Optional[str] = None) -> bool:
    """
    Check if a notification should be queued based on global switches,
    user preferences and quiet hours.
    """
    if channel == "push" and not settings.enable_push:
        return False
    if channel == "email" and not settings.enable_email:
        return False

    user_pref = db.query(UserNotificationPreference).filter(
        UserNotificationPreference.user_id == user_id
    ).first()

    if user_pref:
        if channel == "push" and not user_pref.push:
            return False
        if channel == "email" and not user_pref.email:
            return False
        if is_quiet_hours(user_pref.quiet_hours, timezone_str or settings.tz_default):
            return False

    return True


def emit_event(
    db: Session,
    event: str,
    recipient_ids: Iterable[Optional[int]],
    payload: Optional[Dict] = None,
) -> List[Notification]:
    """
    Emit a named workflow event to each recipient.
    Rows join the caller's transaction; duplicates and None ids are skipped.
    """
    created: List[Notification] = []
    seen = set()
    for user_id in recipient_ids:
        if user_id is None or user_id in seen:
            continue
        seen.add(user_id)
        for channel in CHANNELS:
            if not should_send_notification(db, user_id, channel):
                continue
            notification = Notification(
                user_id=user_id,
                channel=channel,
                event=event,
                payload_json=payload or {},
                status="pending",
            )
            db.add(notification)
            created.append(notification)
    logger.info("workflow_event", event_name=event, recipients=sorted(seen), payload=payload)
    return created


def company_admin_ids(db: Session, company_id: Optional[int]) -> List[int]:
    if company_id is None:
        return []
    rows = db.query(User.id).filter(
        User.company_id == company_id,
        User.role.in_([UserRole.company_admin, UserRole.company_secretary]),
        User.is_active == True,  # noqa: E712
    ).all()
    return [r[0] for r in rows]


def site_admin_ids(db: Session) -> List[int]:
    rows = db.query(User.id).filter(
        User.role.in_([UserRole.site_admin, UserRole.super_admin]),
        User.is_active == True,  # noqa: E712
    ).all()
    return [r[0] for r in rows]


def list_notifications(db: Session, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    # In-app listing reads the push channel only so each event shows once
    query = db.query(Notification).filter(Notification.user_id == user_id, Notification.channel == "push")
    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
