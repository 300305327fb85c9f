"""Customer and catalog Item models (tenant-scoped)."""

import uuid

from invoicely.extensions import db
from invoicely.utils import iso, money


class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(120), nullable=True)
    country = db.Column(db.String(120), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="customers")
    invoices = db.relationship(
        "Invoice", back_populates="customer", lazy="dynamic",
        passive_deletes=True,
    )
    receipts = db.relationship(
        "Receipt", back_populates="customer", lazy="dynamic",
        passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "notes": self.notes,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Customer {self.name}>"


class Item(db.Model):
    __tablename__ = "items"

    TYPES = ["PRODUCT", "SERVICE"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(20), nullable=False, default="PRODUCT")  # PRODUCT | SERVICE
    unit = db.Column(db.String(50), nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    taxable = db.Column(db.Boolean, default=True)
    sku = db.Column(db.String(100), nullable=True)
    category = db.Column(db.String(120), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_items_tenant_sku"),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="items")
    invoice_lines = db.relationship(
        "InvoiceItem", back_populates="item", lazy="dynamic"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "unit": self.unit,
            "price": money(self.price),
            "taxable": bool(self.taxable),
            "sku": self.sku,
            "category": self.category,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Item {self.name}>"
