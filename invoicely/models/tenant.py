"""Tenant model — the unit of data isolation (one per company).

status gates every tenant-scoped operation (see middleware/tenant.py).
receipt_sequence is the per-tenant receipt counter, advanced atomically by
receipt_service.next_receipt_number().
"""

import uuid

from invoicely.extensions import db
from invoicely.utils import iso


class Tenant(db.Model):
    __tablename__ = "tenants"

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    DELETED = "DELETED"
    STATUSES = [ACTIVE, SUSPENDED, DELETED]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True, nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(120), nullable=True)
    country = db.Column(db.String(120), default="Nigeria")
    currency = db.Column(db.String(3), default="NGN", nullable=False)
    status = db.Column(
        db.String(20), default=ACTIVE, nullable=False
    )  # ACTIVE | SUSPENDED | DELETED
    receipt_sequence = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    users = db.relationship("User", back_populates="tenant", lazy="dynamic")
    subscription = db.relationship(
        "Subscription",
        back_populates="tenant",
        uselist=False,
        cascade="all, delete-orphan",
    )
    customers = db.relationship(
        "Customer", back_populates="tenant", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    items = db.relationship(
        "Item", back_populates="tenant", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    invoices = db.relationship(
        "Invoice", back_populates="tenant", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "Payment", back_populates="tenant", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    receipts = db.relationship(
        "Receipt", back_populates="tenant", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    taxes = db.relationship(
        "Tax", back_populates="tenant", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    audit_logs = db.relationship(
        "AuditLog", back_populates="tenant", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def is_active(self):
        return self.status == self.ACTIVE

    def to_dict(self):
        return {
            "id": self.id,
            "company_name": self.company_name,
            "slug": self.slug,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "currency": self.currency,
            "status": self.status,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Tenant {self.company_name} ({self.status})>"
