"""Notification inbox and toast polling endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from finwrk.app.core.security import get_current_user
from finwrk.app.db.session import get_db
from finwrk.app.models.user import User
from finwrk.app.schemas.notification import NotificationRead, PendingToastRead, UnreadCount
from finwrk.app.services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=list[NotificationRead])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return notification_service.list_notifications(db, current_user.id, unread_only=unread_only, limit=limit)


@router.get("/unread-count", response_model=UnreadCount)
async def get_unread_count(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return {"count": notification_service.unread_count(db, current_user.id)}


@router.get("/pending", response_model=list[PendingToastRead])
async def pull_pending(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    # Each staged toast is returned by exactly one poll
    return notification_service.pull_pending_toasts(db, current_user.id)


@router.post("/read-all")
async def read_all(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return {"updated": notification_service.mark_all_read(db, current_user.id)}


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def read_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    notification = notification_service.mark_read(db, current_user.id, notification_id)
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification
