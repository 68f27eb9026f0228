# Overview: Service-layer operations for invoices; creation and the status state machine.

"""
Invoice Workflow Service

================================================================================
STATE MACHINE
================================================================================

    Pending -> Accepted | Rejected | Paid | Overdue | Cancelled

    Pending is the only non-terminal state. Every other state is final:
    nothing transitions out of it, and re-applying the current state is a
    conflict, not a no-op.

    Who may drive a transition (TRANSITIONS below is the single table):
    - Admin: any Pending -> X
    - Assigned user: Pending -> Accepted, Pending -> Rejected

    Entering Accepted or Paid stamps accepted_date.

RULES:
1. Only admins create invoices; totals are computed from items, never supplied
2. Items are immutable after creation
3. Every successful create/transition persists exactly one notification for
   the counterparty, in the same commit as the mutation
4. Push delivery happens after commit and can never fail the operation
================================================================================
"""

from __future__ import annotations

import secrets
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app

from ..authorization import Identity, ensure_can_act, ensure_owner
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Invoice, InvoiceItem, InvoiceStatus, Role, User
from ..time_utils import parse_iso_datetime, utcnow
from . import notification_service
from .concurrency import commit_unique
from .push_service import ADMINS_GROUP


TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.PENDING: frozenset({
        InvoiceStatus.ACCEPTED,
        InvoiceStatus.REJECTED,
        InvoiceStatus.PAID,
        InvoiceStatus.OVERDUE,
        InvoiceStatus.CANCELLED,
    }),
}

USER_REACHABLE: frozenset[InvoiceStatus] = frozenset({InvoiceStatus.ACCEPTED, InvoiceStatus.REJECTED})

STAMPS_ACCEPTED_DATE: frozenset[InvoiceStatus] = frozenset({InvoiceStatus.ACCEPTED, InvoiceStatus.PAID})

MAX_REASON_LENGTH = 500
MAX_CUSTOMER_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 200
CENT = Decimal("0.01")


def can_transition(from_status: InvoiceStatus, to_status: InvoiceStatus) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


def generate_invoice_number() -> str:
    """INV-<UTC timestamp>-<random hex>. The unique column makes collisions retryable."""
    return f"INV-{utcnow():%Y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"


# ----------------------------------------------------------------------
# Input parsing
# ----------------------------------------------------------------------

def _parse_due_date(value) -> datetime:
    if isinstance(value, datetime):
        due = value
    else:
        try:
            due = parse_iso_datetime(value) if isinstance(value, str) else None
        except ValueError:
            due = None
        if due is None:
            raise ValidationError("Due date is required", {"dueDate": "must be an ISO-8601 date"})
    if due.tzinfo is not None:
        due = parse_iso_datetime(due.isoformat())
    if due <= utcnow():
        raise ValidationError("Due date must be in the future", {"dueDate": "must be in the future"})
    return due


def _parse_quantity(value, index: int) -> int:
    field = f"items[{index}].quantity"
    if isinstance(value, bool):
        raise ValidationError("Item quantity must be a whole number", {field: "must be an integer"})
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise ValidationError("Item quantity must be a whole number", {field: "must be an integer"})
    if value <= 0:
        raise ValidationError("Item quantity must be greater than zero", {field: "must be > 0"})
    return value


def _parse_unit_price(value, index: int) -> Decimal:
    field = f"items[{index}].unitPrice"
    if isinstance(value, bool) or value is None:
        raise ValidationError("Item unit price is required", {field: "must be a number"})
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("Item unit price must be a number", {field: "must be a number"})
    if not price.is_finite():
        raise ValidationError("Item unit price must be a number", {field: "must be a number"})
    price = price.quantize(CENT, rounding=ROUND_HALF_UP)
    if price <= 0:
        raise ValidationError("Item unit price must be greater than zero", {field: "must be > 0"})
    return price


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one invoice item is required", {"items": "must not be empty"})

    parsed = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError("Invalid invoice item", {f"items[{index}]": "must be an object"})
        description = raw.get("description")
        if not isinstance(description, str) or not description.strip():
            raise ValidationError(
                "Item description is required", {f"items[{index}].description": "must not be blank"}
            )
        description = description.strip()
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                "Item description is too long",
                {f"items[{index}].description": f"at most {MAX_DESCRIPTION_LENGTH} characters"},
            )
        quantity = _parse_quantity(raw.get("quantity"), index)
        unit_price = _parse_unit_price(raw.get("unitPrice", raw.get("unit_price")), index)
        parsed.append({
            "description": description,
            "quantity": quantity,
            "unit_price": unit_price,
            "total_price": (unit_price * quantity).quantize(CENT),
        })
    return parsed


# ----------------------------------------------------------------------
# Reads
# ----------------------------------------------------------------------

def _load(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


def get_invoice(identity: Identity, invoice_id: int) -> Invoice:
    invoice = _load(invoice_id)
    ensure_can_act(identity, invoice.assigned_user_id)
    return invoice


def list_invoices(identity: Identity) -> list[Invoice]:
    """Admins see every invoice; users only those assigned to them. Newest first."""
    query = db.session.query(Invoice)
    if not identity.is_admin:
        query = query.filter(Invoice.assigned_user_id == identity.user_id)
    return query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()


def list_assignable_users() -> list[User]:
    """Non-admin users, for the admin's assignment dropdown."""
    return (
        db.session.query(User)
        .filter(User.role == Role.USER)
        .order_by(User.username.asc())
        .all()
    )


def build_snapshot(invoice: Invoice) -> dict:
    snapshot = invoice.to_dict()
    assignee = db.session.get(User, invoice.assigned_user_id)
    snapshot["assignedUsername"] = assignee.username if assignee else None
    return snapshot


def download_invoice(identity: Identity, invoice_id: int) -> tuple[str, bytes]:
    """Returns (filename, pdf bytes). The renderer output is passed through unmodified."""
    invoice = get_invoice(identity, invoice_id)
    renderer = current_app.extensions["invoice_renderer"]
    pdf_bytes = renderer.render(build_snapshot(invoice))
    return f"Invoice_{invoice.invoice_number}.pdf", pdf_bytes


# ----------------------------------------------------------------------
# Writes
# ----------------------------------------------------------------------

def create_invoice(
    identity: Identity,
    *,
    customer_name,
    due_date,
    assigned_user_id,
    items,
) -> Invoice:
    """
    Create a Pending invoice with its items and notify the assignee.

    Raises:
        ForbiddenError: caller is not an admin
        ValidationError: blank customer, past due date, bad items, unknown assignee
    """
    if not identity.is_admin:
        raise ForbiddenError("Only admins can create invoices")

    if not isinstance(customer_name, str) or not customer_name.strip():
        raise ValidationError("Customer name is required", {"customerName": "must not be blank"})
    customer_name = customer_name.strip()
    if len(customer_name) > MAX_CUSTOMER_NAME_LENGTH:
        raise ValidationError(
            "Customer name is too long", {"customerName": f"at most {MAX_CUSTOMER_NAME_LENGTH} characters"}
        )

    due = _parse_due_date(due_date)
    parsed_items = _parse_items(items)

    if isinstance(assigned_user_id, bool) or not isinstance(assigned_user_id, int):
        raise ValidationError("Assigned user is required", {"assignedUserId": "must be a user id"})
    if db.session.get(User, assigned_user_id) is None:
        raise ValidationError("Assigned user not found", {"assignedUserId": "no such user"})

    total = sum((item["total_price"] for item in parsed_items), Decimal("0.00"))

    staged: dict = {}

    def build() -> Invoice:
        invoice = Invoice(
            invoice_number=generate_invoice_number(),
            customer_name=customer_name,
            issue_date=utcnow(),
            due_date=due,
            total_amount=total,
            status=InvoiceStatus.PENDING,
            assigned_user_id=assigned_user_id,
            created_by_admin_id=identity.user_id,
            items=[InvoiceItem(**item) for item in parsed_items],
        )
        db.session.add(invoice)
        staged["notification"] = notification_service.record(
            assigned_user_id,
            f"New invoice #{invoice.invoice_number} has been assigned to you for {customer_name}",
        )
        return invoice

    invoice = commit_unique(build)

    notification_service.publish(staged["notification"])
    notification_service.broadcast(
        ADMINS_GROUP,
        f"Invoice #{invoice.invoice_number} created for {customer_name} by {identity.username}",
    )
    return invoice


def _apply_transition(invoice: Invoice, new_status: InvoiceStatus) -> InvoiceStatus:
    """
    Move invoice to new_status if the table allows it.

    The UPDATE is conditioned on the status read earlier, so of two
    concurrent transitions only one can win. Does not commit.
    """
    old_status = invoice.status
    if not can_transition(old_status, new_status):
        raise ConflictError(
            f"Invoice has already been processed (status: {old_status.value})",
            {"status": old_status.value, "requested": new_status.value},
        )

    values = {Invoice.status: new_status}
    if new_status in STAMPS_ACCEPTED_DATE:
        values[Invoice.accepted_date] = utcnow()

    updated = (
        db.session.query(Invoice)
        .filter(Invoice.id == invoice.id, Invoice.status == old_status)
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        db.session.rollback()
        raise ConflictError("Invoice has already been processed")
    return old_status


def _commit_with_notification(invoice: Invoice, recipient_id: int | None, message: str) -> Invoice:
    notification = None
    if recipient_id is not None:
        notification = notification_service.record(recipient_id, message)
    db.session.commit()
    db.session.refresh(invoice)
    if notification is not None:
        notification_service.publish(notification)
    return invoice


def update_status(identity: Identity, invoice_id: int, new_status) -> Invoice:
    """
    Generic status change.

    Admin changes notify the assigned user; user changes notify the creating
    admin (skipped when the creator is unknown).
    """
    invoice = _load(invoice_id)
    ensure_can_act(identity, invoice.assigned_user_id)

    status = InvoiceStatus.parse(new_status)
    if status is None:
        raise ValidationError(
            "Invalid status",
            {"status": f"must be one of: {', '.join(s.value for s in InvoiceStatus)}"},
        )
    if not identity.is_admin and status not in USER_REACHABLE:
        raise ForbiddenError(f"Users cannot set status to {status.value}")

    old_status = _apply_transition(invoice, status)

    message = (
        f"Invoice #{invoice.invoice_number} status changed from {old_status.value} "
        f"to {status.value} by {identity.username}"
    )
    recipient = invoice.assigned_user_id if identity.is_admin else invoice.created_by_admin_id
    return _commit_with_notification(invoice, recipient, message)


def accept_invoice(identity: Identity, invoice_id: int) -> Invoice:
    invoice = _load(invoice_id)
    ensure_owner(identity, invoice.assigned_user_id, "Only the assigned user can accept this invoice")

    _apply_transition(invoice, InvoiceStatus.ACCEPTED)

    message = (
        f"Invoice #{invoice.invoice_number} for {invoice.customer_name} "
        f"has been accepted by {identity.username}"
    )
    return _commit_with_notification(invoice, invoice.created_by_admin_id, message)


def reject_invoice(identity: Identity, invoice_id: int, reason) -> Invoice:
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("Rejection reason is required", {"reason": "must not be blank"})
    reason = reason.strip()
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(
            "Rejection reason is too long", {"reason": f"at most {MAX_REASON_LENGTH} characters"}
        )

    invoice = _load(invoice_id)
    ensure_owner(identity, invoice.assigned_user_id, "Only the assigned user can reject this invoice")

    _apply_transition(invoice, InvoiceStatus.REJECTED)

    message = (
        f"Invoice #{invoice.invoice_number} for {invoice.customer_name} "
        f"has been rejected by {identity.username}. Reason: {reason}"
    )
    return _commit_with_notification(invoice, invoice.created_by_admin_id, message)
