"""Billing service utilities: invoice totals, payments and status transitions."""

import logging
import secrets
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from finwrk.app.core.errors import InvalidTransitionError, InvariantViolationError
from finwrk.app.core.time import ensure_utc, utc_now
from finwrk.app.models.invoice import (
    CLOSED_INVOICE_STATUSES,
    INVOICE_TRANSITIONS,
    OPEN_INVOICE_STATUSES,
    Invoice,
    InvoiceStatus,
)
from finwrk.app.models.payment import Payment
from finwrk.app.services.reminders import dismiss_invoice_reminders, schedule_invoice_reminder

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

INITIAL_INVOICE_STATUSES = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.SENT})


def to_money(value: Decimal | float | int | str | None) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def recalculate_invoice_totals(invoice: Invoice) -> None:
    paid = sum((to_money(p.amount) for p in invoice.payments if p.amount is not None), ZERO)
    invoice.amount_paid = paid
    invoice.balance_due = to_money(invoice.total_amount) - paid


def check_invoice_transition(current: InvoiceStatus, target: InvoiceStatus) -> None:
    if current == target:
        return
    if target not in INVOICE_TRANSITIONS[current]:
        raise InvalidTransitionError("invoice", current.value, target.value)


def lock_invoice(db: Session, invoice_id: int, owner_id: int | None = None) -> Invoice | None:
    """Load an invoice with a row lock so status-affecting events for it apply in order."""
    query = db.query(Invoice).filter(Invoice.id == invoice_id)
    if owner_id is not None:
        query = query.filter(Invoice.owner_id == owner_id)
    return query.with_for_update().first()


def apply_invoice_status(db: Session, invoice: Invoice, new_status: InvoiceStatus, now: datetime) -> bool:
    check_invoice_transition(invoice.status, new_status)
    if invoice.status == new_status:
        return False
    previous = invoice.status
    invoice.status = new_status
    if new_status in CLOSED_INVOICE_STATUSES:
        dismiss_invoice_reminders(db, invoice.id, now=now)
    else:
        schedule_invoice_reminder(db, invoice, now=now)
    logger.info("Invoice %s moved from %s to %s", invoice.invoice_number, previous.value, new_status.value)
    return True


def create_invoice(
    db: Session,
    *,
    owner_id: int,
    client_id: int,
    invoice_number: str,
    total_amount: Decimal | float | str,
    due_date: datetime,
    issue_date: datetime | None = None,
    status: InvoiceStatus = InvoiceStatus.DRAFT,
    currency: str = "USD",
    notes: str | None = None,
    recurring_template_id: int | None = None,
    now: datetime | None = None,
    commit: bool = True,
) -> Invoice:
    now = now or utc_now()
    total = to_money(total_amount)
    if total < ZERO:
        raise InvariantViolationError("Invoice total cannot be negative")
    if status not in INITIAL_INVOICE_STATUSES:
        raise InvariantViolationError("New invoices must start as draft or sent")
    issue = ensure_utc(issue_date) or now
    due = ensure_utc(due_date)
    if due < issue:
        raise InvariantViolationError("Due date cannot be before the issue date")
    if db.query(Invoice.id).filter(Invoice.invoice_number == invoice_number).first():
        raise InvariantViolationError(f"Invoice number {invoice_number} already exists")

    invoice = Invoice(
        owner_id=owner_id,
        client_id=client_id,
        recurring_template_id=recurring_template_id,
        invoice_number=invoice_number,
        status=status,
        currency=currency,
        total_amount=total,
        amount_paid=ZERO,
        balance_due=total,
        notes=notes,
        issue_date=issue,
        due_date=due,
    )
    db.add(invoice)
    db.flush()  # obtain invoice id for the reminder row
    schedule_invoice_reminder(db, invoice, now=now)
    if commit:
        db.commit()
        db.refresh(invoice)
    logger.info("Created invoice %s (%s %s) for client %s", invoice_number, total, currency, client_id)
    return invoice


def check_status_change(invoice: Invoice, new_status: InvoiceStatus) -> None:
    check_invoice_transition(invoice.status, new_status)
    if new_status == InvoiceStatus.PAID and to_money(invoice.balance_due) > ZERO:
        raise InvariantViolationError("Invoice has an outstanding balance; record a payment instead")


def change_invoice_status(
    db: Session,
    invoice: Invoice,
    new_status: InvoiceStatus,
    now: datetime | None = None,
    commit: bool = True,
) -> Invoice:
    check_status_change(invoice, new_status)
    apply_invoice_status(db, invoice, new_status, now or utc_now())
    if commit:
        db.commit()
        db.refresh(invoice)
    return invoice


def check_due_date_change(invoice: Invoice, due_date: datetime) -> datetime:
    if invoice.status in CLOSED_INVOICE_STATUSES:
        raise InvalidTransitionError("invoice", invoice.status.value, "rescheduled")
    due = ensure_utc(due_date)
    if due < ensure_utc(invoice.issue_date):
        raise InvariantViolationError("Due date cannot be before the issue date")
    return due


def update_due_date(
    db: Session,
    invoice: Invoice,
    due_date: datetime,
    now: datetime | None = None,
    commit: bool = True,
) -> Invoice:
    now = now or utc_now()
    due = check_due_date_change(invoice, due_date)
    invoice.due_date = due
    if invoice.status == InvoiceStatus.OVERDUE and due > now:
        apply_invoice_status(db, invoice, InvoiceStatus.SENT, now)
    else:
        schedule_invoice_reminder(db, invoice, now=now)
    if commit:
        db.commit()
        db.refresh(invoice)
    return invoice


def record_payment(
    db: Session,
    invoice: Invoice,
    amount: Decimal | float | str,
    *,
    method: str | None = None,
    notes: str | None = None,
    received_at: datetime | None = None,
    allow_overpayment: bool = False,
    now: datetime | None = None,
) -> Payment:
    now = now or utc_now()
    if invoice.status not in OPEN_INVOICE_STATUSES:
        raise InvariantViolationError(f"Cannot apply payment to a {invoice.status.value} invoice")
    payment_amount = to_money(amount)
    if payment_amount <= ZERO:
        raise InvariantViolationError("Payment amount must be positive")
    if not allow_overpayment and to_money(invoice.amount_paid) + payment_amount > to_money(invoice.total_amount):
        raise InvariantViolationError("Payment exceeds the invoice balance")

    payment = Payment(
        owner_id=invoice.owner_id,
        invoice_id=invoice.id,
        amount=payment_amount,
        method=method,
        notes=notes,
        received_at=ensure_utc(received_at) or now,
    )
    invoice.payments.append(payment)
    recalculate_invoice_totals(invoice)
    if invoice.balance_due <= ZERO:
        apply_invoice_status(db, invoice, InvoiceStatus.PAID, now)
    db.commit()
    db.refresh(payment)
    db.refresh(invoice)
    logger.info("Recorded payment of %s on invoice %s; balance %s", payment_amount, invoice.invoice_number, invoice.balance_due)
    return payment


def ensure_payment_token(db: Session, invoice: Invoice) -> str:
    if not invoice.payment_token:
        invoice.payment_token = secrets.token_urlsafe(24)
        db.commit()
        db.refresh(invoice)
    return invoice.payment_token


def mark_overdue_invoices(db: Session, now: datetime | None = None) -> int:
    """Move unpaid sent/payment_sent invoices past their due date to overdue."""
    now = now or utc_now()
    candidates = (
        db.query(Invoice.id)
        .filter(
            Invoice.status.in_([InvoiceStatus.SENT, InvoiceStatus.PAYMENT_SENT]),
            Invoice.due_date < now,
        )
        .all()
    )
    updated = 0
    for (invoice_id,) in candidates:
        try:
            invoice = lock_invoice(db, invoice_id)
            if invoice is None or invoice.status not in (InvoiceStatus.SENT, InvoiceStatus.PAYMENT_SENT):
                db.rollback()
                continue
            if to_money(invoice.balance_due) <= ZERO or ensure_utc(invoice.due_date) >= now:
                db.rollback()
                continue
            apply_invoice_status(db, invoice, InvoiceStatus.OVERDUE, now)
            db.commit()
            updated += 1
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to mark invoice %s overdue", invoice_id)
    return updated
