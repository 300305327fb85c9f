"""Admin blueprint — /admin/api/*

Platform operator endpoints. All routes protected by @admin_required.

Route Map:
  GET    /admin/api/tenants            — Tenants with subscription summary
  PATCH  /admin/api/tenants/<id>       — Change tenant status (audited)
  DELETE /admin/api/tenants/<id>       — Hard delete (cascades to tenant data)
  GET    /admin/api/plans              — Full catalog, inactive plans included
  POST   /admin/api/plans              — Create plan
  PATCH  /admin/api/plans/<id>         — Update plan
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from invoicely.blueprints.common import json_body, paginate
from invoicely.decorators import admin_required
from invoicely.errors import NotFound, ValidationError
from invoicely.extensions import db
from invoicely.models.plan import Plan
from invoicely.models.tenant import Tenant
from invoicely.models.user import User
from invoicely.services import plan_service
from invoicely.services.audit_service import log_audit

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/admin/api")


def _tenant_summary(tenant):
    data = tenant.to_dict()
    subscription = tenant.subscription
    data["subscription"] = subscription.to_dict(include_plan=True) if subscription else None
    data["user_count"] = tenant.users.count()
    return data


def _get_tenant(tenant_id):
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found.")
    return tenant


# ══════════════════════════════════════════════
#  TENANTS
# ══════════════════════════════════════════════

@admin_bp.route("/tenants")
@admin_required
def list_tenants():
    query = Tenant.query
    status = request.args.get("status")
    if status:
        query = query.filter_by(status=status)
    search = (request.args.get("search") or "").strip()
    if search:
        query = query.filter(Tenant.company_name.ilike(f"%{search}%"))
    query = query.order_by(Tenant.created_at.desc())
    return jsonify(paginate(query, _tenant_summary))


@admin_bp.route("/tenants/<tenant_id>", methods=["PATCH"])
@admin_required
def update_tenant(tenant_id):
    tenant = _get_tenant(tenant_id)
    status = json_body().get("status")
    if status not in Tenant.STATUSES:
        raise ValidationError(f"status must be one of {Tenant.STATUSES}.")

    old_status = tenant.status
    if status != old_status:
        tenant.status = status
        log_audit(
            tenant.id,
            "TENANT_STATUS_CHANGED",
            entity_type="tenant",
            entity_id=tenant.id,
            metadata={"old_status": old_status, "new_status": status},
            user_id=current_user.id,
        )
        db.session.commit()
        logger.info(f"Tenant {tenant.id} status {old_status} -> {status}")
    return jsonify({"tenant": _tenant_summary(tenant)})


@admin_bp.route("/tenants/<tenant_id>", methods=["DELETE"])
@admin_required
def delete_tenant(tenant_id):
    tenant = _get_tenant(tenant_id)
    # Users outlive their tenant; unlink them so they can onboard again.
    User.query.filter_by(tenant_id=tenant.id).update(
        {"tenant_id": None}, synchronize_session=False
    )
    db.session.delete(tenant)
    db.session.commit()
    logger.warning(f"Tenant {tenant_id} hard-deleted by {current_user.email}")
    return jsonify({"deleted": True})


# ══════════════════════════════════════════════
#  PLANS
# ══════════════════════════════════════════════

@admin_bp.route("/plans")
@admin_required
def list_plans():
    plans = Plan.query.order_by(Plan.price.asc()).all()
    return jsonify({"plans": [plan.to_dict() for plan in plans]})


@admin_bp.route("/plans", methods=["POST"])
@admin_required
def create_plan():
    try:
        plan = plan_service.save_plan(json_body())
    except ValueError as e:
        db.session.rollback()
        raise ValidationError(str(e))
    db.session.commit()
    return jsonify({"plan": plan.to_dict()}), 201


@admin_bp.route("/plans/<plan_id>", methods=["PATCH"])
@admin_required
def update_plan(plan_id):
    plan = db.session.get(Plan, plan_id)
    if plan is None:
        raise NotFound("Plan not found.")
    try:
        plan_service.save_plan(json_body(), plan=plan)
    except ValueError as e:
        db.session.rollback()
        raise ValidationError(str(e))
    db.session.commit()
    return jsonify({"plan": plan.to_dict()})
