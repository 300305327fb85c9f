"""Entitlement engine — plan limits and feature flags per tenant.

Resource checks return a ResourceCheck instead of raising, so handlers can
tell a plan denial from an infrastructure failure. require_resource() and
require_feature() are the raising wrappers used by the CRUD gate.

Access rules:
    no subscription / status not ACTIVE or TRIALING -> denied
    TRIALING with trial_ends_at in the future      -> every feature on
    ACTIVE                                          -> the plan's flags
    limit == -1                                     -> unlimited, never counted

The limit check is advisory: two concurrent creates can both pass at
current == limit - 1.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from invoicely.errors import FeatureUnavailable, LimitReached
from invoicely.models.customer import Customer, Item
from invoicely.models.invoice import Invoice
from invoicely.models.plan import Plan, UNLIMITED
from invoicely.models.subscription import Subscription
from invoicely.models.user import User
from invoicely.utils import as_utc, utcnow

logger = logging.getLogger(__name__)


# resource name -> tenant-scoped model that is counted
RESOURCE_MODELS = {
    "invoices": Invoice,
    "customers": Customer,
    "items": Item,
    "users": User,
}


@dataclass
class ResourceCheck:
    allowed: bool
    limit: Optional[int] = None
    current: Optional[int] = None
    reason: Optional[str] = None


def get_subscription(tenant_id):
    return Subscription.query.filter_by(tenant_id=tenant_id).first()


def _feature_column(feature):
    """Accept both 'sms' and 'can_use_sms'."""
    if feature in Plan.FEATURES:
        return Plan.FEATURES[feature]
    if feature in Plan.FEATURES.values():
        return feature
    raise ValueError(f"Unknown feature {feature!r}")


def is_in_trial(subscription, now=None):
    """TRIALING and the trial end is still ahead of ``now``."""
    if subscription is None or subscription.status != Subscription.TRIALING:
        return False
    if subscription.trial_ends_at is None:
        return False
    now = now or utcnow()
    return as_utc(subscription.trial_ends_at) > now


def trial_days_remaining(subscription, now=None):
    """Whole days left in the trial, rounded up. Never negative."""
    if subscription is None or subscription.trial_ends_at is None:
        return 0
    now = now or utcnow()
    remaining = (as_utc(subscription.trial_ends_at) - now).total_seconds()
    if remaining <= 0:
        return 0
    return math.ceil(remaining / 86400)


def check_resource_limit(tenant_id, resource):
    """Can the tenant create one more ``resource``? Returns a ResourceCheck."""
    if resource not in RESOURCE_MODELS:
        raise ValueError(f"Unknown resource {resource!r}")

    subscription = get_subscription(tenant_id)
    if subscription is None:
        return ResourceCheck(False, reason="No active subscription found")
    if subscription.status not in Subscription.LIVE_STATUSES:
        return ResourceCheck(False, reason="Subscription is not active")

    limit = subscription.plan.limit_for(resource)
    if limit == UNLIMITED:
        return ResourceCheck(True, limit=UNLIMITED)

    model = RESOURCE_MODELS[resource]
    current = model.query.filter_by(tenant_id=tenant_id).count()
    if current >= limit:
        return ResourceCheck(
            False,
            limit=limit,
            current=current,
            reason=f"You have reached your {resource} limit ({limit}). "
                   f"Please upgrade your plan.",
        )
    return ResourceCheck(True, limit=limit, current=current)


def check_feature_access(tenant_id, feature, now=None):
    """True if the tenant may use ``feature`` right now."""
    column = _feature_column(feature)
    subscription = get_subscription(tenant_id)
    if subscription is None:
        return False
    if is_in_trial(subscription, now):
        return True
    if subscription.status != Subscription.ACTIVE:
        return False
    return bool(getattr(subscription.plan, column))


def require_resource(tenant_id, resource):
    """Raise LimitReached unless the tenant may create one more ``resource``."""
    check = check_resource_limit(tenant_id, resource)
    if not check.allowed:
        logger.info(
            f"Limit denial tenant={tenant_id} resource={resource} "
            f"({check.current}/{check.limit})"
        )
        raise LimitReached(check.reason, limit=check.limit, current=check.current)
    return check


def require_feature(tenant_id, feature):
    if not check_feature_access(tenant_id, feature):
        raise FeatureUnavailable(
            f"The {feature} feature is not available on your plan. "
            f"Please upgrade to use it.",
            feature=feature,
        )


def get_usage_stats(tenant_id):
    """Used/limit per resource for the subscription page. None without a subscription."""
    subscription = get_subscription(tenant_id)
    if subscription is None:
        return None

    stats = {}
    for resource, model in RESOURCE_MODELS.items():
        used = model.query.filter_by(tenant_id=tenant_id).count()
        limit = subscription.plan.limit_for(resource)
        unlimited = limit == UNLIMITED
        if unlimited:
            percentage = 0
        elif limit <= 0:
            percentage = 100
        else:
            percentage = min(100, round(used * 100 / limit))
        stats[resource] = {
            "used": used,
            "limit": limit,
            "unlimited": unlimited,
            "percentage": percentage,
        }
    return stats
