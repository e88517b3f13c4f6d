from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventmarket.database import get_db
from eventmarket.deps import get_current_user
from eventmarket.models import User
from eventmarket.schemas import NotificationResponse
from eventmarket.services.notifications import list_notifications, mark_read

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse])
def get_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List the current user's notifications, newest first."""
    return list_notifications(db, current_user.id, unread_only=unread_only, limit=limit, offset=offset)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def read_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return mark_read(db, current_user.id, notification_id)
