"""User model.

Stores authentication credentials and the tenant the user belongs to.
Flask-Login integration via UserMixin. tenant_id stays null until the
user completes onboarding.
"""

import uuid

from flask_login import UserMixin

from invoicely.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    is_admin = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="users")
    audit_logs = db.relationship(
        "AuditLog", back_populates="user", lazy="dynamic"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "tenant_id": self.tenant_id,
            "is_admin": bool(self.is_admin),
        }

    def __repr__(self):
        return f"<User {self.email}>"
