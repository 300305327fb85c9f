"""Subscription lifecycle — onboarding trial, cancel, reactivate, upgrade.

Responsible for:
- Creating the tenant and its trial subscription at onboarding
- Scheduling and undoing cancellation at period end
- Starting an upgrade checkout (no subscription change until payment)
- Applying a paid upgrade (called by reconciliation only)
- Expiring lapsed trials and cancellations (flask expire-subscriptions)

Every transition locks the tenant's subscription row and writes exactly
one audit row in the same transaction. Public transitions commit; the
upgrade confirmation only flushes because it runs inside the
reconciliation transaction.
"""

import logging
from datetime import timedelta

from invoicely.errors import (
    AlreadyCanceled,
    AlreadyOnboarded,
    NoSubscription,
    NotFound,
    NotScheduledForCancellation,
    UpgradeRejected,
    ValidationError,
)
from invoicely.extensions import db
from invoicely.models.payment import Payment
from invoicely.models.plan import Plan
from invoicely.models.subscription import Subscription
from invoicely.models.tenant import Tenant
from invoicely.services.audit_service import log_audit
from invoicely.services.paystack_service import generate_reference, to_minor_units
from invoicely.services.plan_service import get_trial_plan
from invoicely.utils import add_months, as_utc, iso, slugify, utcnow

logger = logging.getLogger(__name__)


def _snapshot(subscription):
    """JSON-safe view of the fields a transition can change."""
    return {
        "status": subscription.status,
        "plan": subscription.plan.name if subscription.plan else None,
        "cancel_at_period_end": bool(subscription.cancel_at_period_end),
        "canceled_at": iso(subscription.canceled_at),
        "current_period_end": iso(subscription.current_period_end),
        "trial_ends_at": iso(subscription.trial_ends_at),
    }


def lock_subscription(tenant_id):
    """SELECT ... FOR UPDATE the tenant's subscription. Raises NoSubscription."""
    subscription = (
        Subscription.query
        .filter_by(tenant_id=tenant_id)
        .with_for_update()
        .first()
    )
    if subscription is None:
        raise NoSubscription()
    return subscription


def period_end_for(plan, start):
    if plan.billing_period == Plan.YEARLY:
        return add_months(start, 12)
    return add_months(start, 1)


# ──────────────────────────────────────────────
# Onboarding
# ──────────────────────────────────────────────

def unique_tenant_slug(company_name):
    base = slugify(company_name) or "company"
    slug = base
    counter = 1
    while Tenant.query.filter_by(slug=slug).first() is not None:
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def create_trial_subscription(tenant_id, plan_slug=None, now=None):
    """Start the onboarding trial. Flushes; the onboarding transaction commits.

    trial_ends_at = now + plan.trial_days and the first period ends with
    the trial.
    """
    if Subscription.query.filter_by(tenant_id=tenant_id).first() is not None:
        raise AlreadyOnboarded("This company already has a subscription.")

    plan = get_trial_plan(plan_slug)
    if plan is None:
        raise NotFound("No plans are configured. Run flask seed-plans.")

    now = now or utcnow()
    trial_ends_at = now + timedelta(days=plan.trial_days or 0)
    subscription = Subscription(
        tenant_id=tenant_id,
        plan_id=plan.id,
        status=Subscription.TRIALING,
        trial_ends_at=trial_ends_at,
        current_period_start=now,
        current_period_end=trial_ends_at,
        cancel_at_period_end=False,
    )
    db.session.add(subscription)
    db.session.flush()
    return subscription


def onboard_tenant(user, data, plan_slug=None, now=None):
    """Create tenant + trial subscription + user link + audit row, atomically.

    Returns (tenant, subscription).
    """
    if user.tenant_id:
        raise AlreadyOnboarded()

    company_name = (data.get("company_name") or "").strip()
    if len(company_name) < 2:
        raise ValidationError("Company name must be at least 2 characters.")

    try:
        tenant = Tenant(
            company_name=company_name,
            slug=unique_tenant_slug(company_name),
            email=data.get("email") or user.email,
            phone=data.get("phone"),
            address=data.get("address"),
            city=data.get("city"),
            state=data.get("state"),
            country=data.get("country") or "Nigeria",
            currency=data.get("currency") or "NGN",
            status=Tenant.ACTIVE,
            receipt_sequence=0,
        )
        db.session.add(tenant)
        db.session.flush()

        subscription = create_trial_subscription(tenant.id, plan_slug, now=now)
        user.tenant_id = tenant.id

        log_audit(
            tenant.id,
            "TENANT_CREATED",
            entity_type="tenant",
            entity_id=tenant.id,
            user_id=user.id,
            metadata={
                "company_name": tenant.company_name,
                "plan": subscription.plan.name,
                "trial_days": subscription.plan.trial_days,
                "trial_ends_at": iso(subscription.trial_ends_at),
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Onboarded tenant {tenant.slug} on {subscription.plan.slug} trial")
    return tenant, subscription


# ──────────────────────────────────────────────
# Cancel / reactivate
# ──────────────────────────────────────────────

def cancel_subscription(tenant_id, user_id=None, now=None):
    """Schedule cancellation at period end. Status and period end are untouched.

    Repeating the call re-stamps canceled_at.
    """
    try:
        subscription = lock_subscription(tenant_id)
        if subscription.status == Subscription.CANCELED:
            raise AlreadyCanceled()

        before = _snapshot(subscription)
        subscription.cancel_at_period_end = True
        subscription.canceled_at = now or utcnow()
        db.session.flush()

        log_audit(
            tenant_id,
            "SUBSCRIPTION_CANCELED",
            entity_type="subscription",
            entity_id=subscription.id,
            user_id=user_id,
            metadata={"before": before, "after": _snapshot(subscription)},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Subscription for tenant {tenant_id} scheduled to cancel")
    return subscription


def reactivate_subscription(tenant_id, user_id=None):
    """Undo a scheduled cancellation."""
    try:
        subscription = lock_subscription(tenant_id)
        if not subscription.cancel_at_period_end:
            raise NotScheduledForCancellation()

        before = _snapshot(subscription)
        subscription.cancel_at_period_end = False
        subscription.canceled_at = None
        db.session.flush()

        log_audit(
            tenant_id,
            "SUBSCRIPTION_REACTIVATED",
            entity_type="subscription",
            entity_id=subscription.id,
            user_id=user_id,
            metadata={"before": before, "after": _snapshot(subscription)},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Subscription for tenant {tenant_id} reactivated")
    return subscription


# ──────────────────────────────────────────────
# Upgrade
# ──────────────────────────────────────────────

def initiate_upgrade(tenant_id, plan_id, user, gateway, callback_url):
    """Open a gateway checkout for a more expensive plan.

    The subscription is not changed here. A pending upgrade Payment is
    recorded so the webhook and the verify endpoint can both reconcile it.
    Gateway errors propagate before anything is written.

    Returns (checkout, payment).
    """
    if not plan_id:
        raise ValidationError("Plan ID is required.")

    subscription = Subscription.query.filter_by(tenant_id=tenant_id).first()
    if subscription is None:
        raise NoSubscription()

    new_plan = db.session.get(Plan, plan_id)
    if new_plan is None or not new_plan.is_active:
        raise NotFound("Invalid or inactive plan.")

    current_plan = subscription.plan
    if new_plan.price <= current_plan.price:
        raise UpgradeRejected()

    tenant = db.session.get(Tenant, tenant_id)
    reference = generate_reference("UPG")
    metadata = {
        "tenantId": tenant_id,
        "planId": new_plan.id,
        "userId": user.id,
        "type": "upgrade",
    }
    checkout = gateway.initialize_transaction(
        email=tenant.email or user.email,
        amount_minor_units=to_minor_units(new_plan.price),
        reference=reference,
        metadata=metadata,
        callback_url=callback_url,
        currency=new_plan.currency,
    )

    try:
        payment = Payment(
            tenant_id=tenant_id,
            reference=checkout.reference,
            purpose=Payment.PURPOSE_UPGRADE,
            plan_id=new_plan.id,
            user_id=user.id,
            amount=new_plan.price,
            currency=new_plan.currency,
            payment_method="Paystack",
            status=Payment.PENDING,
            authorization_url=checkout.authorization_url,
            metadata_={"access_code": checkout.access_code, **metadata},
        )
        db.session.add(payment)
        db.session.flush()

        log_audit(
            tenant_id,
            "SUBSCRIPTION_UPGRADE_INITIATED",
            entity_type="subscription",
            entity_id=subscription.id,
            user_id=user.id,
            metadata={
                "from_plan": current_plan.name,
                "to_plan": new_plan.name,
                "amount": float(new_plan.price),
                "reference": checkout.reference,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        f"Upgrade checkout {checkout.reference} tenant={tenant_id} "
        f"{current_plan.slug} -> {new_plan.slug}"
    )
    return checkout, payment


def confirm_upgrade(tenant_id, plan_id, reference=None, user_id=None, now=None):
    """Move the subscription onto ``plan_id`` for a fresh paid period.

    Runs inside the reconciliation transaction: locks the subscription,
    flushes, never commits.
    """
    plan = db.session.get(Plan, plan_id) if plan_id else None
    if plan is None:
        raise NotFound("Upgrade plan not found.")

    subscription = lock_subscription(tenant_id)
    before = _snapshot(subscription)

    now = now or utcnow()
    subscription.plan_id = plan.id
    subscription.plan = plan
    subscription.status = Subscription.ACTIVE
    subscription.current_period_start = now
    subscription.current_period_end = period_end_for(plan, now)
    subscription.cancel_at_period_end = False
    subscription.canceled_at = None
    subscription.trial_ends_at = None
    db.session.flush()

    after = _snapshot(subscription)
    log_audit(
        tenant_id,
        "SUBSCRIPTION_UPGRADED",
        entity_type="subscription",
        entity_id=subscription.id,
        user_id=user_id,
        metadata={
            "old_plan": before["plan"],
            "new_plan": after["plan"],
            "old_status": before["status"],
            "new_status": after["status"],
            "reference": reference,
            "before": before,
            "after": after,
        },
    )
    logger.info(f"Tenant {tenant_id} upgraded {before['plan']} -> {plan.name}")
    return subscription


# ──────────────────────────────────────────────
# Expiry (flask expire-subscriptions)
# ──────────────────────────────────────────────

def expire_subscriptions(now=None):
    """Flip lapsed subscriptions. Returns {"canceled": n, "past_due": n}.

    - TRIALING whose trial has ended          -> CANCELED
    - cancel_at_period_end and period ended    -> CANCELED
    - ACTIVE whose period ended, not canceling -> PAST_DUE
    """
    now = now or utcnow()
    counts = {"canceled": 0, "past_due": 0}

    candidates = (
        Subscription.query
        .filter(Subscription.status.in_(Subscription.LIVE_STATUSES))
        .with_for_update()
        .all()
    )
    try:
        for subscription in candidates:
            trial_ends_at = as_utc(subscription.trial_ends_at)
            period_end = as_utc(subscription.current_period_end)

            if subscription.status == Subscription.TRIALING:
                if trial_ends_at is None or trial_ends_at > now:
                    continue
                new_status, action = Subscription.CANCELED, "SUBSCRIPTION_EXPIRED"
            elif period_end is None or period_end > now:
                continue
            elif subscription.cancel_at_period_end:
                new_status, action = Subscription.CANCELED, "SUBSCRIPTION_EXPIRED"
            else:
                new_status, action = Subscription.PAST_DUE, "SUBSCRIPTION_PAST_DUE"

            before = _snapshot(subscription)
            subscription.status = new_status
            db.session.flush()
            log_audit(
                subscription.tenant_id,
                action,
                entity_type="subscription",
                entity_id=subscription.id,
                metadata={"before": before, "after": _snapshot(subscription)},
            )
            counts["canceled" if new_status == Subscription.CANCELED else "past_due"] += 1

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Expired subscriptions: {counts}")
    return counts
