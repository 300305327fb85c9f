"""Tenant middleware — resolves the logged-in user's tenant context.

Runs before every request. Sets g.tenant, g.tenant_id and g.subscription
for authenticated users who have completed onboarding; leaves them None
otherwise. Access decisions (status, limits, features) are made by the
decorators in invoicely/decorators.py, not here.
"""

from flask import g, request
from flask_login import current_user
from sqlalchemy.orm import joinedload

from invoicely.models.tenant import Tenant

SKIP_PREFIXES = ("/static/", "/webhooks/")


def resolve_tenant():
    """Before-request hook: load the caller's tenant and subscription."""
    g.tenant = None
    g.tenant_id = None
    g.subscription = None

    if request.path.startswith(SKIP_PREFIXES):
        return
    if not current_user.is_authenticated or not current_user.tenant_id:
        return

    # Single query: tenant + subscription + plan
    tenant = (
        Tenant.query
        .options(joinedload(Tenant.subscription))
        .filter_by(id=current_user.tenant_id)
        .first()
    )
    if tenant is None:
        return

    g.tenant = tenant
    g.tenant_id = tenant.id
    g.subscription = tenant.subscription


def init_tenant_middleware(app):
    """Register the tenant resolver as a before_request hook."""
    app.before_request(resolve_tenant)
