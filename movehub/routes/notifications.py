from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import Notification, User
from ..services.errors import NotFoundError
from ..services.notifications import list_notifications as query_notifications
from .serializers import notification_dict

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    limit: Optional[int] = 50,
    unread_only: Optional[bool] = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    """In-app feed of workflow events for the current user."""
    rows = query_notifications(db, user.id, unread_only=bool(unread_only), limit=min(limit or 50, 200))
    return [notification_dict(n) for n in rows]


@router.patch("/read-all")
def mark_all_read(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    updated = db.query(Notification).filter(
        Notification.user_id == user.id,
        Notification.is_read == False,  # noqa: E712
    ).update({Notification.is_read: True}, synchronize_session=False)
    db.commit()
    return {"updated": updated}


@router.patch("/{notification_id}/read")
def mark_read(notification_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user.id,
    ).first()
    if notification is None:
        raise NotFoundError("Notification not found", {"id": notification_id})
    notification.is_read = True
    db.commit()
    return notification_dict(notification)
