"""Invoice and invoice line models.

payment_status == PAID is terminal: blueprints refuse edits and deletes of
a paid invoice, and only reconciliation or manual settlement set it.
"""

import uuid

from invoicely.extensions import db
from invoicely.utils import iso, money


class Invoice(db.Model):
    __tablename__ = "invoices"

    # -- Document status --
    DRAFT = "DRAFT"
    SENT = "SENT"
    VIEWED = "VIEWED"
    OVERDUE = "OVERDUE"
    CANCELED = "CANCELED"
    STATUSES = [DRAFT, SENT, VIEWED, OVERDUE, CANCELED]

    # -- Payment status --
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    PAYMENT_STATUSES = [UNPAID, PARTIALLY_PAID, PAID]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=False
    )
    invoice_number = db.Column(db.String(50), nullable=False)
    issue_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=DRAFT)
    payment_status = db.Column(db.String(20), nullable=False, default=UNPAID)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_id = db.Column(
        db.String(36),
        db.ForeignKey("taxes.id", ondelete="SET NULL"),
        nullable=True,
    )
    tax_rate = db.Column(db.Numeric(5, 2), nullable=True)  # snapshot of tax.rate
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    notes = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)
    payment_link = db.Column(db.String(500), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "tenant_id", "invoice_number", name="uq_invoices_tenant_number"
        ),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="invoices")
    customer = db.relationship("Customer", back_populates="invoices")
    tax = db.relationship("Tax", back_populates="invoices")
    lines = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )
    payments = db.relationship(
        "Payment", back_populates="invoice", lazy="dynamic"
    )

    @property
    def is_paid(self):
        return self.payment_status == self.PAID

    def to_dict(self, include_lines=True):
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "issue_date": iso(self.issue_date),
            "due_date": iso(self.due_date),
            "status": self.status,
            "payment_status": self.payment_status,
            "subtotal": money(self.subtotal),
            "tax_id": self.tax_id,
            "tax_rate": money(self.tax_rate),
            "tax_amount": money(self.tax_amount),
            "total": money(self.total),
            "currency": self.currency,
            "notes": self.notes,
            "terms": self.terms,
            "payment_link": self.payment_link,
            "paid_at": iso(self.paid_at),
            "created_at": iso(self.created_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data

    def __repr__(self):
        return f"<Invoice {self.invoice_number} ({self.payment_status})>"


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_id = db.Column(
        db.String(36),
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = db.Column(
        db.String(36),
        db.ForeignKey("items.id", ondelete="SET NULL"),
        nullable=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.String(500), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=1)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # --- Relationships ---
    invoice = db.relationship("Invoice", back_populates="lines")
    item = db.relationship("Item", back_populates="invoice_lines")

    def to_dict(self):
        return {
            "id": self.id,
            "item_id": self.item_id,
            "description": self.description,
            "quantity": money(self.quantity),
            "price": money(self.price),
            "amount": money(self.amount),
        }

    def __repr__(self):
        return f"<InvoiceItem {self.description} x{self.quantity}>"
