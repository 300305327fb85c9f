"""Plan catalog model.

A priced tier: billing period, trial length, per-resource limits and
feature flags. A limit of UNLIMITED (-1) means no cap and is never counted.
"""

import uuid

from invoicely.extensions import db
from invoicely.utils import money


UNLIMITED = -1


class Plan(db.Model):
    __tablename__ = "plans"

    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    BILLING_PERIODS = [MONTHLY, YEARLY]

    # resource name -> limit column
    RESOURCE_LIMITS = {
        "invoices": "max_invoices",
        "customers": "max_customers",
        "items": "max_items",
        "users": "max_users",
    }

    # feature name -> flag column
    FEATURES = {
        "premium_templates": "can_use_premium_templates",
        "customize_templates": "can_customize_templates",
        "reporting": "can_use_reporting",
        "export_data": "can_export_data",
        "remove_branding": "can_remove_branding",
        "whatsapp": "can_use_whatsapp",
        "sms": "can_use_sms",
    }

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.String(500), nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    billing_period = db.Column(
        db.String(20), nullable=False, default=MONTHLY
    )  # MONTHLY | YEARLY
    trial_days = db.Column(db.Integer, nullable=False, default=0)

    max_invoices = db.Column(db.Integer, nullable=False, default=UNLIMITED)
    max_customers = db.Column(db.Integer, nullable=False, default=UNLIMITED)
    max_items = db.Column(db.Integer, nullable=False, default=UNLIMITED)
    max_users = db.Column(db.Integer, nullable=False, default=UNLIMITED)

    can_use_premium_templates = db.Column(db.Boolean, default=False)
    can_customize_templates = db.Column(db.Boolean, default=False)
    can_use_reporting = db.Column(db.Boolean, default=False)
    can_export_data = db.Column(db.Boolean, default=False)
    can_remove_branding = db.Column(db.Boolean, default=False)
    can_use_whatsapp = db.Column(db.Boolean, default=False)
    can_use_sms = db.Column(db.Boolean, default=False)

    is_active = db.Column(db.Boolean, default=True)
    is_default = db.Column(db.Boolean, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    subscriptions = db.relationship(
        "Subscription", back_populates="plan", lazy="dynamic"
    )

    def limit_for(self, resource):
        return getattr(self, self.RESOURCE_LIMITS[resource])

    def has_feature(self, feature):
        return bool(getattr(self, self.FEATURES[feature]))

    def to_dict(self):
        data = {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "price": money(self.price),
            "currency": self.currency,
            "billing_period": self.billing_period,
            "trial_days": self.trial_days,
            "is_active": bool(self.is_active),
            "is_default": bool(self.is_default),
        }
        for column in self.RESOURCE_LIMITS.values():
            data[column] = getattr(self, column)
        for column in self.FEATURES.values():
            data[column] = bool(getattr(self, column))
        return data

    def __repr__(self):
        return f"<Plan {self.slug} {self.price} {self.currency}>"
