"""Recurring invoice template endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from finwrk.app.core.security import get_current_user
from finwrk.app.crud.crud_client import client_crud
from finwrk.app.db.session import get_db
from finwrk.app.models.recurring_template import RecurringTemplate
from finwrk.app.models.user import User
from finwrk.app.schemas.recurring_template import (
    RecurringTemplateCreate,
    RecurringTemplateRead,
    RecurringTemplateUpdate,
)
from finwrk.app.services.recurrence import create_template, deactivate_template, update_template

router = APIRouter(prefix="/recurring-templates", tags=["recurring-templates"])


def _get_owned_template(db: Session, template_id: int, owner_id: int) -> RecurringTemplate:
    template = (
        db.query(RecurringTemplate)
        .filter(RecurringTemplate.id == template_id, RecurringTemplate.owner_id == owner_id)
        .first()
    )
    if not template:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return template


@router.post("/", response_model=RecurringTemplateRead, status_code=status.HTTP_201_CREATED)
async def create_recurring_template(
    template_in: RecurringTemplateCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    client = client_crud.get(db, client_id=template_in.client_id, owner_id=current_user.id)
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return create_template(
        db,
        owner_id=current_user.id,
        client_id=client.id,
        amount=template_in.amount,
        billing_cycle=template_in.billing_cycle,
        start_date=template_in.start_date,
        custom_cycle_days=template_in.custom_cycle_days,
        description=template_in.description,
        notes=template_in.notes,
        currency=template_in.currency,
        generated_status=template_in.generated_status,
        due_days=template_in.due_days,
        end_date=template_in.end_date,
    )


@router.get("/", response_model=list[RecurringTemplateRead])
async def list_recurring_templates(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(RecurringTemplate).filter(RecurringTemplate.owner_id == current_user.id)
    if not include_inactive:
        query = query.filter(RecurringTemplate.active.is_(True))
    return query.order_by(RecurringTemplate.next_run_date.asc(), RecurringTemplate.id.asc()).all()


@router.get("/{template_id}", response_model=RecurringTemplateRead)
async def get_recurring_template(
    template_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _get_owned_template(db, template_id, current_user.id)


@router.patch("/{template_id}", response_model=RecurringTemplateRead)
async def update_recurring_template(
    template_id: int,
    template_in: RecurringTemplateUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    template = _get_owned_template(db, template_id, current_user.id)
    return update_template(db, template, template_in.model_dump(exclude_unset=True))


@router.post("/{template_id}/deactivate", response_model=RecurringTemplateRead)
async def deactivate_recurring_template(
    template_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    template = _get_owned_template(db, template_id, current_user.id)
    return deactivate_template(db, template)
