"""Recurring invoice templates: billing-cycle math and per-period invoice generation."""

import logging
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from finwrk.app.core.errors import InvariantViolationError
from finwrk.app.core.settings import get_settings
from finwrk.app.core.time import ensure_utc, utc_now
from finwrk.app.models.invoice import Invoice, InvoiceStatus
from finwrk.app.models.recurring_template import BillingCycle, RecurringTemplate
from finwrk.app.services.billing import INITIAL_INVOICE_STATUSES, create_invoice, to_money

logger = logging.getLogger(__name__)

CYCLE_MONTHS = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.YEARLY: 12,
}


def validate_cycle(billing_cycle: BillingCycle, custom_cycle_days: int | None) -> None:
    if billing_cycle == BillingCycle.CUSTOM:
        if not custom_cycle_days or custom_cycle_days <= 0:
            raise InvariantViolationError("Custom billing cycles need a positive day count")
    elif custom_cycle_days is not None:
        raise InvariantViolationError("custom_cycle_days is only valid for the custom billing cycle")


def run_date_for_cycle(anchor_date: datetime, billing_cycle: BillingCycle, custom_cycle_days: int | None, cycle: int) -> datetime:
    """Return the run date of the n-th cycle counted from the anchor.

    Months are added from the anchor rather than from the previous run date so
    an anchor on the 31st clamps to short months without drifting.
    """
    anchor = ensure_utc(anchor_date)
    if billing_cycle == BillingCycle.CUSTOM:
        return anchor + timedelta(days=custom_cycle_days * cycle)
    return anchor + relativedelta(months=CYCLE_MONTHS[billing_cycle] * cycle)


def next_run_after(template: RecurringTemplate) -> datetime:
    return run_date_for_cycle(
        template.anchor_date,
        template.billing_cycle,
        template.custom_cycle_days,
        template.cycles_generated + 1,
    )


def recurring_invoice_number(template: RecurringTemplate, run_date: datetime) -> str:
    return f"INV-{run_date:%Y%m%d}-{template.id}-{template.cycles_generated + 1:04d}"


def create_template(
    db: Session,
    *,
    owner_id: int,
    client_id: int,
    amount,
    billing_cycle: BillingCycle,
    start_date: datetime,
    custom_cycle_days: int | None = None,
    description: str | None = None,
    notes: str | None = None,
    currency: str = "USD",
    generated_status: InvoiceStatus = InvoiceStatus.DRAFT,
    due_days: int | None = None,
    end_date: datetime | None = None,
) -> RecurringTemplate:
    validate_cycle(billing_cycle, custom_cycle_days)
    amount = to_money(amount)
    if amount <= 0:
        raise InvariantViolationError("Recurring amount must be positive")
    if generated_status not in INITIAL_INVOICE_STATUSES:
        raise InvariantViolationError("Generated invoices must start as draft or sent")
    if due_days is None:
        due_days = get_settings().default_due_days
    if due_days < 0:
        raise InvariantViolationError("due_days cannot be negative")
    start = ensure_utc(start_date)
    template = RecurringTemplate(
        owner_id=owner_id,
        client_id=client_id,
        amount=amount,
        currency=currency,
        description=description,
        notes=notes,
        billing_cycle=billing_cycle,
        custom_cycle_days=custom_cycle_days,
        anchor_date=start,
        next_run_date=start,
        cycles_generated=0,
        generated_status=generated_status,
        due_days=due_days,
        end_date=ensure_utc(end_date),
        active=True,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def update_template(db: Session, template: RecurringTemplate, changes: dict) -> RecurringTemplate:
    billing_cycle = changes.get("billing_cycle", template.billing_cycle)
    custom_cycle_days = changes.get("custom_cycle_days", template.custom_cycle_days)
    if billing_cycle != BillingCycle.CUSTOM and "billing_cycle" in changes and "custom_cycle_days" not in changes:
        custom_cycle_days = None
    validate_cycle(billing_cycle, custom_cycle_days)
    if "amount" in changes:
        amount = to_money(changes["amount"])
        if amount <= 0:
            raise InvariantViolationError("Recurring amount must be positive")
        template.amount = amount
    if changes.get("generated_status") is not None and changes["generated_status"] not in INITIAL_INVOICE_STATUSES:
        raise InvariantViolationError("Generated invoices must start as draft or sent")
    for field in ("description", "notes", "currency", "generated_status", "due_days"):
        if field in changes and changes[field] is not None:
            setattr(template, field, changes[field])
    if "end_date" in changes:
        template.end_date = ensure_utc(changes["end_date"])

    cycle_changed = billing_cycle != template.billing_cycle or custom_cycle_days != template.custom_cycle_days
    template.billing_cycle = billing_cycle
    template.custom_cycle_days = custom_cycle_days
    if cycle_changed:
        # Re-anchor on the pending run so already generated periods are untouched
        template.anchor_date = template.next_run_date
        template.cycles_generated = 0
    db.commit()
    db.refresh(template)
    return template


def deactivate_template(db: Session, template: RecurringTemplate) -> RecurringTemplate:
    if template.active:
        template.active = False
        db.commit()
        db.refresh(template)
        logger.info("Deactivated recurring template %s", template.id)
    return template


def generate_invoice_from_template(
    db: Session,
    template: RecurringTemplate,
    now: datetime | None = None,
) -> Invoice:
    """Create the invoice for the template's pending run date and advance it one cycle.

    Does not commit: the invoice and the advanced template are written in the
    caller's transaction so a failed write never advances the schedule.
    """
    now = now or utc_now()
    run_date = ensure_utc(template.next_run_date)
    invoice = create_invoice(
        db,
        owner_id=template.owner_id,
        client_id=template.client_id,
        invoice_number=recurring_invoice_number(template, run_date),
        total_amount=template.amount,
        currency=template.currency,
        issue_date=run_date,
        due_date=run_date + timedelta(days=template.due_days),
        status=template.generated_status,
        notes=template.notes,
        recurring_template_id=template.id,
        now=now,
        commit=False,
    )
    template.next_run_date = next_run_after(template)
    template.cycles_generated = template.cycles_generated + 1
    template.last_generated_at = now
    template.last_error = None
    db.flush()
    return invoice
