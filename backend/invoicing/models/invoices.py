from __future__ import annotations

import enum

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


class InvoiceStatus(str, enum.Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    PAID = "Paid"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, value) -> "InvoiceStatus | None":
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        return None


def _money(value) -> str | None:
    return None if value is None else f"{value:.2f}"


class Invoice(db.Model):
    """
    Invoice issued by an admin to exactly one assigned user.

    total_amount is derived from the items at creation and never set by hand.
    Items are immutable once the invoice exists; the only mutation after
    creation is a status transition (see services/invoice_service.py).

    created_by_admin_id degrades to NULL when the admin row is removed.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_assigned_issue", "assigned_user_id", "issue_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(50), nullable=False, unique=True, index=True)
    customer_name = db.Column(db.String(200), nullable=False)

    issue_date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    due_date = db.Column(db.DateTime, nullable=False)

    total_amount = db.Column(db.Numeric(18, 2), nullable=False)

    status = db.Column(
        db.Enum(InvoiceStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=InvoiceStatus.PENDING,
    )
    accepted_date = db.Column(db.DateTime, nullable=True)

    assigned_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_by_admin_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # One-directional: items never navigate back to the invoice object.
    items = db.relationship(
        "InvoiceItem",
        order_by="InvoiceItem.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "customerName": self.customer_name,
            "issueDate": to_utc_z(self.issue_date),
            "dueDate": to_utc_z(self.due_date),
            "totalAmount": _money(self.total_amount),
            "status": self.status.value,
            "acceptedDate": to_utc_z(self.accepted_date),
            "assignedUserId": self.assigned_user_id,
            "createdByAdminId": self.created_by_admin_id,
            "items": [item.to_dict() for item in self.items],
        }


class InvoiceItem(db.Model):
    """Line of an invoice. total_price = quantity * unit_price, stored once."""
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        db.CheckConstraint("unit_price > 0", name="ck_invoice_items_unit_price_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    description = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(18, 2), nullable=False)
    total_price = db.Column(db.Numeric(18, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "quantity": self.quantity,
            "unitPrice": _money(self.unit_price),
            "totalPrice": _money(self.total_price),
        }
