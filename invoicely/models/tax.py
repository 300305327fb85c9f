"""Tax rates a tenant can apply to invoices.

At most one tax per tenant has is_default set; the taxes blueprint clears
the others whenever one is marked default.
"""

import uuid

from invoicely.extensions import db
from invoicely.utils import iso, money


class Tax(db.Model):
    __tablename__ = "taxes"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(120), nullable=False)
    rate = db.Column(db.Numeric(5, 2), nullable=False)  # percent, 0-100
    description = db.Column(db.String(500), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="taxes")
    invoices = db.relationship("Invoice", back_populates="tax", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "rate": money(self.rate),
            "description": self.description,
            "is_default": self.is_default,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Tax {self.name} {self.rate}%>"
