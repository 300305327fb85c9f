"""Payment model — one gateway transaction, keyed by its reference.

reference is the idempotency key shared by the webhook and the verify
endpoints. status moves pending -> success | failed, and success is
terminal. Only reconciliation_service.apply_successful_payment() writes
success.

What a payment is *for* is a tagged union over the purpose column:

    invoice  -> InvoicePurpose(invoice_id)
    upgrade  -> UpgradePurpose(plan_id)
    adhoc    -> AdhocPurpose(customer_id)

Payment.target returns the variant; a row whose purpose key is missing is
a data error and raises ValueError.
"""

import uuid
from dataclasses import dataclass

from invoicely.extensions import db
from invoicely.utils import iso, money


@dataclass(frozen=True)
class InvoicePurpose:
    invoice_id: str


@dataclass(frozen=True)
class UpgradePurpose:
    plan_id: str


@dataclass(frozen=True)
class AdhocPurpose:
    customer_id: str


class Payment(db.Model):
    __tablename__ = "payments"

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    STATUSES = [PENDING, SUCCESS, FAILED]

    PURPOSE_INVOICE = "invoice"
    PURPOSE_UPGRADE = "upgrade"
    PURPOSE_ADHOC = "adhoc"

    # purpose -> (variant, key column)
    PURPOSES = {
        PURPOSE_INVOICE: (InvoicePurpose, "invoice_id"),
        PURPOSE_UPGRADE: (UpgradePurpose, "plan_id"),
        PURPOSE_ADHOC: (AdhocPurpose, "customer_id"),
    }

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reference = db.Column(db.String(100), unique=True, nullable=False)
    purpose = db.Column(db.String(20), nullable=False)  # invoice | upgrade | adhoc
    invoice_id = db.Column(
        db.String(36),
        db.ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
    )
    plan_id = db.Column(
        db.String(36), db.ForeignKey("plans.id"), nullable=True
    )
    customer_id = db.Column(
        db.String(36),
        db.ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    payment_method = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=PENDING)
    gateway_status = db.Column(db.String(50), nullable=True)
    gateway_response = db.Column(db.String(500), nullable=True)
    authorization_url = db.Column(db.String(500), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # access code, channel, fees, authorization
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="payments")
    invoice = db.relationship("Invoice", back_populates="payments")
    plan = db.relationship("Plan")
    customer = db.relationship("Customer")
    receipt = db.relationship("Receipt", back_populates="payment", uselist=False)

    @property
    def target(self):
        """The purpose variant for this payment."""
        try:
            variant, column = self.PURPOSES[self.purpose]
        except KeyError:
            raise ValueError(f"Unknown payment purpose {self.purpose!r}")
        key = getattr(self, column)
        if not key:
            raise ValueError(
                f"Payment {self.reference} ({self.purpose}) has no {column}"
            )
        return variant(key)

    @property
    def is_successful(self):
        return self.status == self.SUCCESS

    def to_dict(self):
        return {
            "id": self.id,
            "reference": self.reference,
            "purpose": self.purpose,
            "invoice_id": self.invoice_id,
            "plan_id": self.plan_id,
            "customer_id": self.customer_id,
            "amount": money(self.amount),
            "currency": self.currency,
            "payment_method": self.payment_method,
            "status": self.status,
            "gateway_status": self.gateway_status,
            "gateway_response": self.gateway_response,
            "paid_at": iso(self.paid_at),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Payment {self.reference} ({self.status})>"
