"""Subscription model — a tenant's single binding to a plan over time.

Exactly one row per tenant (unique tenant_id). status is the stored
lifecycle state; trial access is always decided from trial_ends_at as well,
since status can lag behind the clock (see entitlement_service).
"""

import uuid

from invoicely.extensions import db
from invoicely.utils import iso


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    TRIALING = "TRIALING"
    ACTIVE = "ACTIVE"
    CANCELED = "CANCELED"
    PAST_DUE = "PAST_DUE"
    STATUSES = [TRIALING, ACTIVE, CANCELED, PAST_DUE]
    LIVE_STATUSES = (ACTIVE, TRIALING)

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    plan_id = db.Column(
        db.String(36), db.ForeignKey("plans.id"), nullable=False
    )
    status = db.Column(
        db.String(20), nullable=False, default=TRIALING
    )  # TRIALING | ACTIVE | CANCELED | PAST_DUE
    trial_ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_start = db.Column(db.DateTime(timezone=True), nullable=False)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=False)
    cancel_at_period_end = db.Column(db.Boolean, default=False, nullable=False)
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="subscription")
    plan = db.relationship("Plan", back_populates="subscriptions")

    def to_dict(self, include_plan=True):
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "plan_id": self.plan_id,
            "status": self.status,
            "trial_ends_at": iso(self.trial_ends_at),
            "current_period_start": iso(self.current_period_start),
            "current_period_end": iso(self.current_period_end),
            "cancel_at_period_end": bool(self.cancel_at_period_end),
            "canceled_at": iso(self.canceled_at),
        }
        if include_plan and self.plan is not None:
            data["plan"] = self.plan.to_dict()
        return data

    def __repr__(self):
        return f"<Subscription tenant={self.tenant_id} ({self.status})>"
