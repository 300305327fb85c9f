"""Audit log model.

Append-only record of every lifecycle transition and financial mutation.
Rows are written by audit_service.log_audit() inside the caller's
transaction, so a rolled-back change leaves no audit row behind.
"""

import uuid

from invoicely.extensions import db
from invoicely.utils import iso


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    action = db.Column(db.String(100), nullable=False)  # e.g. "PAYMENT_RECEIVED"
    entity_type = db.Column(db.String(50), nullable=True)  # e.g. "invoice"
    entity_id = db.Column(db.String(36), nullable=True)
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # before/after values, named metadata_ to avoid the declarative clash
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="audit_logs")
    user = db.relationship("User", back_populates="audit_logs")

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "metadata": self.metadata_ or {},
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<AuditLog {self.action}>"
