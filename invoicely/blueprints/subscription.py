"""Subscription blueprint — onboarding, plans, subscription management.

Route Map:
  POST   /api/onboarding              — Create company + trial subscription
  GET    /api/plans                   — Active plans by price (public)
  GET    /api/subscription            — Subscription, usage, trial days
  POST   /api/subscription/cancel     — Cancel at period end
  DELETE /api/subscription/cancel     — Undo cancellation
  POST   /api/subscription/upgrade    — Start upgrade checkout
  GET    /api/subscription/verify     — Confirm upgrade after checkout
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request
from flask_login import current_user, login_required

from invoicely.blueprints.common import json_body, notifier, payment_gateway
from invoicely.decorators import tenant_required
from invoicely.errors import NoSubscription
from invoicely.extensions import limiter
from invoicely.services import (
    entitlement_service,
    plan_service,
    reconciliation_service,
    subscription_service,
)
from invoicely.utils import as_utc, utcnow

logger = logging.getLogger(__name__)

subscription_bp = Blueprint("subscription", __name__, url_prefix="/api")


@subscription_bp.route("/onboarding", methods=["POST"])
@login_required
def onboarding():
    """Create the caller's company with a trial on the designated plan."""
    tenant, subscription = subscription_service.onboard_tenant(
        current_user,
        json_body(),
        plan_slug=current_app.config.get("TRIAL_PLAN_SLUG"),
    )
    return jsonify({
        "success": True,
        "message": "Company created successfully",
        "tenant": tenant.to_dict(),
        "subscription": subscription.to_dict(),
    }), 201


@subscription_bp.route("/plans")
def list_plans():
    plans = plan_service.list_active_plans()
    return jsonify({"plans": [plan.to_dict() for plan in plans]})


@subscription_bp.route("/subscription")
@tenant_required
def get_subscription():
    subscription = g.subscription
    if subscription is None:
        raise NoSubscription()

    now = utcnow()
    in_trial = entitlement_service.is_in_trial(subscription, now)
    period_end = as_utc(subscription.current_period_end)
    days_remaining = max(0, (period_end - now).days) if period_end else 0

    return jsonify({
        "subscription": subscription.to_dict(),
        "is_in_trial": in_trial,
        "trial_days_remaining": entitlement_service.trial_days_remaining(subscription, now),
        "days_remaining": days_remaining,
        "period_type": "trial" if in_trial else "billing",
        "is_active": subscription.status in subscription.LIVE_STATUSES,
        "usage": entitlement_service.get_usage_stats(g.tenant_id),
    })


@subscription_bp.route("/subscription/cancel", methods=["POST"])
@tenant_required
def cancel_subscription():
    subscription = subscription_service.cancel_subscription(
        g.tenant_id, user_id=current_user.id
    )
    return jsonify({
        "success": True,
        "message": "Subscription will be canceled at the end of the billing period",
        "subscription": subscription.to_dict(),
    })


@subscription_bp.route("/subscription/cancel", methods=["DELETE"])
@tenant_required
def reactivate_subscription():
    subscription = subscription_service.reactivate_subscription(
        g.tenant_id, user_id=current_user.id
    )
    return jsonify({
        "success": True,
        "message": "Subscription reactivated",
        "subscription": subscription.to_dict(),
    })


@subscription_bp.route("/subscription/upgrade", methods=["POST"])
@tenant_required
@limiter.limit("10 per minute")
def upgrade_subscription():
    data = json_body()
    base_url = current_app.config["APP_BASE_URL"]
    checkout, payment = subscription_service.initiate_upgrade(
        g.tenant_id,
        data.get("plan_id"),
        current_user,
        payment_gateway(),
        callback_url=f"{base_url}/dashboard/subscription/callback",
    )
    return jsonify({
        "success": True,
        "authorization_url": checkout.authorization_url,
        "access_code": checkout.access_code,
        "reference": checkout.reference,
    })


@subscription_bp.route("/subscription/verify")
@tenant_required
def verify_subscription():
    subscription = reconciliation_service.verify_upgrade_payment(
        g.tenant_id,
        request.args.get("reference"),
        payment_gateway(),
        notifier(),
    )
    return jsonify({
        "success": True,
        "message": "Subscription upgraded successfully",
        "subscription": subscription.to_dict(),
    })
