"""Reminder endpoints: invoice payment reminders and user-created reminders."""

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from finwrk.app.core.security import get_current_user
from finwrk.app.core.time import utc_now
from finwrk.app.db.session import get_db
from finwrk.app.dependencies.jobs import require_reminder_features
from finwrk.app.models.invoice import Invoice
from finwrk.app.models.reminder import Reminder, ReminderCategory, ReminderStatus
from finwrk.app.models.user import User
from finwrk.app.schemas.reminder import ReminderCreate, ReminderRead
from finwrk.app.services.reminders import create_custom_reminder, dismiss_reminder

router = APIRouter(prefix="/reminders", tags=["reminders"], dependencies=[Depends(require_reminder_features)])


def _get_owned_reminder(db: Session, reminder_id: int, user_id: int) -> Reminder:
    reminder = db.query(Reminder).filter(Reminder.id == reminder_id, Reminder.owner_id == user_id).first()
    if not reminder:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return reminder


@router.get("/", response_model=list[ReminderRead])
async def list_reminders(
    status: ReminderStatus | None = None,
    category: ReminderCategory | None = None,
    invoice_id: int | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Reminder).filter(Reminder.owner_id == current_user.id)
    if status:
        query = query.filter(Reminder.status == status)
    if category:
        query = query.filter(Reminder.category == category)
    if invoice_id:
        query = query.filter(Reminder.invoice_id == invoice_id)
    return query.order_by(Reminder.fire_at.asc(), Reminder.id.asc()).all()


@router.get("/upcoming", response_model=list[ReminderRead])
async def upcoming_reminders(
    days: int = 7,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Pending reminders firing within the next ``days`` days, including ones already due."""
    horizon = utc_now() + timedelta(days=days)
    return (
        db.query(Reminder)
        .filter(
            Reminder.owner_id == current_user.id,
            Reminder.status == ReminderStatus.PENDING,
            Reminder.fire_at <= horizon,
        )
        .order_by(Reminder.fire_at.asc(), Reminder.id.asc())
        .all()
    )


@router.post("/", response_model=ReminderRead, status_code=201)
async def create_reminder(
    reminder_in: ReminderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if reminder_in.invoice_id is not None:
        invoice = (
            db.query(Invoice)
            .filter(Invoice.id == reminder_in.invoice_id, Invoice.owner_id == current_user.id)
            .first()
        )
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
    return create_custom_reminder(
        db,
        owner_id=current_user.id,
        title=reminder_in.title,
        fire_at=reminder_in.fire_at,
        category=reminder_in.category,
        priority=reminder_in.priority,
        description=reminder_in.description,
        invoice_id=reminder_in.invoice_id,
    )


@router.get("/{reminder_id}", response_model=ReminderRead)
async def get_reminder(reminder_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _get_owned_reminder(db, reminder_id, current_user.id)


@router.post("/{reminder_id}/dismiss", response_model=ReminderRead)
async def dismiss(reminder_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    reminder = _get_owned_reminder(db, reminder_id, current_user.id)
    return dismiss_reminder(db, reminder)
