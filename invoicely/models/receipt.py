"""Receipt model.

receipt_number is REC-0001 style, unique per tenant, allocated by
receipt_service.next_receipt_number(). payment_id is set when the receipt
was issued by reconciliation; a payment yields at most one receipt.
"""

import uuid

from invoicely.extensions import db
from invoicely.utils import iso, money


class Receipt(db.Model):
    __tablename__ = "receipts"

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
        db.String(36),
        db.ForeignKey("customers.id"),
        nullable=False,
        index=True,
    )
    payment_id = db.Column(
        db.String(36),
        db.ForeignKey("payments.id", ondelete="SET NULL"),
        unique=True,
        nullable=True,
    )
    receipt_number = db.Column(db.String(50), nullable=False)
    issue_date = db.Column(db.DateTime(timezone=True), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    payment_method = db.Column(db.String(50), nullable=True)
    reference = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)
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
            "tenant_id", "receipt_number", name="uq_receipts_tenant_number"
        ),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="receipts")
    customer = db.relationship("Customer", back_populates="receipts")
    payment = db.relationship("Payment", back_populates="receipt")

    def to_dict(self):
        return {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "payment_id": self.payment_id,
            "issue_date": iso(self.issue_date),
            "amount": money(self.amount),
            "currency": self.currency,
            "payment_method": self.payment_method,
            "reference": self.reference,
            "notes": self.notes,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Receipt {self.receipt_number}>"
