"""Invoice routes for freelancers/owners."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from finwrk.app.core.errors import FinwrkError
from finwrk.app.core.security import get_current_user
from finwrk.app.core.settings import get_settings
from finwrk.app.crud.crud_client import client_crud
from finwrk.app.db.session import get_db
from finwrk.app.models.invoice import Invoice, InvoiceStatus
from finwrk.app.models.payment import Payment
from finwrk.app.models.user import User
from finwrk.app.schemas.invoice import InvoiceCreate, InvoiceRead, InvoiceUpdate, PaymentLinkRead
from finwrk.app.schemas.payment import PaymentCreate, PaymentRead
from finwrk.app.services.billing import (
    change_invoice_status,
    check_due_date_change,
    check_status_change,
    create_invoice,
    ensure_payment_token,
    lock_invoice,
    record_payment,
    update_due_date,
)

router = APIRouter(prefix="/invoices", tags=["invoices"])


def _get_owned_invoice(db: Session, invoice_id: int, owner_id: int, lock: bool = False) -> Invoice:
    if lock:
        invoice = lock_invoice(db, invoice_id, owner_id=owner_id)
    else:
        invoice = db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.owner_id == owner_id).first()
    if not invoice:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return invoice


@router.post("/", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
async def create_invoice_for_client(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    client = client_crud.get(db, client_id=payload.client_id, owner_id=current_user.id)
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return create_invoice(
        db,
        owner_id=current_user.id,
        client_id=client.id,
        invoice_number=payload.invoice_number,
        total_amount=payload.total_amount,
        due_date=payload.due_date,
        issue_date=payload.issue_date,
        status=payload.status,
        currency=payload.currency,
        notes=payload.notes,
    )


@router.get("/", response_model=List[InvoiceRead])
async def list_invoices(
    status: InvoiceStatus | None = None,
    client_id: int | None = None,
    include_archived: bool = False,
    skip: int = 0,
    limit: int = 50,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Invoice).filter(Invoice.owner_id == current_user.id)
    if status:
        query = query.filter(Invoice.status == status)
    elif not include_archived:
        query = query.filter(Invoice.status != InvoiceStatus.ARCHIVED)
    if client_id:
        query = query.filter(Invoice.client_id == client_id)

    supported_sort_fields = {
        "created_at": Invoice.created_at,
        "status": Invoice.status,
        "total_amount": Invoice.total_amount,
        "due_date": Invoice.due_date,
        "issue_date": Invoice.issue_date,
    }
    if sort_by not in supported_sort_fields:
        raise HTTPException(status_code=400, detail="Invalid sort_by value")
    sort_order_normalized = (sort_order or "desc").lower()
    if sort_order_normalized not in {"asc", "desc"}:
        raise HTTPException(status_code=400, detail="Invalid sort_order value")
    sort_column = supported_sort_fields[sort_by]
    if sort_order_normalized == "asc":
        order_by_clause = [sort_column.asc(), Invoice.id.asc()]
    else:
        order_by_clause = [sort_column.desc(), Invoice.id.desc()]

    query = query.order_by(*order_by_clause).offset(skip).limit(limit)
    return query.all()


@router.get("/{invoice_id}", response_model=InvoiceRead)
async def get_invoice(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _get_owned_invoice(db, invoice_id, current_user.id)


@router.patch("/{invoice_id}", response_model=InvoiceRead)
async def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    invoice = _get_owned_invoice(db, invoice_id, current_user.id, lock=True)
    # Validate every requested change before writing any of them
    if payload.due_date is not None:
        check_due_date_change(invoice, payload.due_date)
    if payload.status is not None:
        check_status_change(invoice, payload.status)

    try:
        if payload.notes is not None:
            invoice.notes = payload.notes
        if payload.due_date is not None:
            update_due_date(db, invoice, payload.due_date, commit=False)
        if payload.status is not None:
            change_invoice_status(db, invoice, payload.status, commit=False)
    except FinwrkError:
        db.rollback()
        raise
    db.commit()
    db.refresh(invoice)
    return invoice


@router.post("/{invoice_id}/archive", response_model=InvoiceRead)
async def archive_invoice(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    invoice = _get_owned_invoice(db, invoice_id, current_user.id, lock=True)
    return change_invoice_status(db, invoice, InvoiceStatus.ARCHIVED)


@router.post("/{invoice_id}/payments", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
async def create_payment_for_invoice(
    invoice_id: int,
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    invoice = _get_owned_invoice(db, invoice_id, current_user.id, lock=True)
    return record_payment(
        db,
        invoice,
        payload.amount,
        method=payload.method,
        notes=payload.notes,
        received_at=payload.received_at,
        allow_overpayment=payload.allow_overpayment,
    )


@router.get("/{invoice_id}/payments", response_model=List[PaymentRead])
async def list_invoice_payments(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    invoice = _get_owned_invoice(db, invoice_id, current_user.id)
    return (
        db.query(Payment)
        .filter(Payment.invoice_id == invoice.id)
        .order_by(Payment.received_at.asc(), Payment.id.asc())
        .all()
    )


@router.post("/{invoice_id}/payment-link", response_model=PaymentLinkRead)
async def create_payment_link(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    invoice = _get_owned_invoice(db, invoice_id, current_user.id)
    token = ensure_payment_token(db, invoice)
    return {
        "invoice_id": invoice.id,
        "payment_token": token,
        "url": f"{get_settings().public_base_url}/pay/{token}",
    }
