"""
Custom route decorators for access control.

- tenant_required: logged in AND onboarded AND the tenant is ACTIVE.
- admin_required: logged in AND is_admin.
- enforce_limit(resource): plan limit check before a create.
- feature_required(feature): plan feature check.

Stack them outermost first, e.g.

    @bp.route("", methods=["POST"])
    @tenant_required
    @enforce_limit("customers")
    def create_customer(): ...
"""

from functools import wraps

from flask import g
from flask_login import current_user, login_required

from invoicely.errors import Forbidden, TenantSuspended
from invoicely.models.tenant import Tenant
from invoicely.services.entitlement_service import require_feature, require_resource


def tenant_required(f):
    """Require login + a tenant in good standing."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        # g.tenant is set by tenant middleware
        tenant = getattr(g, "tenant", None)
        if tenant is None:
            raise Forbidden(
                "Complete onboarding to create your company account.",
                onboarding_required=True,
            )
        if tenant.status == Tenant.SUSPENDED:
            raise TenantSuspended()
        if tenant.status != Tenant.ACTIVE:
            raise Forbidden("Tenant account has been deleted.")
        return f(*args, **kwargs)

    return decorated


def admin_required(f):
    """Require login + is_admin flag."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.is_admin:
            raise Forbidden()
        return f(*args, **kwargs)

    return decorated


def enforce_limit(resource):
    """Deny the create with LimitReached once the plan limit is hit."""

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            require_resource(g.tenant_id, resource)
            return f(*args, **kwargs)

        return decorated

    return decorator


def feature_required(feature):
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            require_feature(g.tenant_id, feature)
            return f(*args, **kwargs)

        return decorated

    return decorator
