"""Plan catalog service.

Responsible for:
- Listing active plans for the pricing page
- Resolving the trial plan used at onboarding
- Keeping at most one plan flagged as default
- Seeding the stock catalog (flask seed-plans)
"""

import logging
from decimal import Decimal

from invoicely.extensions import db
from invoicely.models.plan import Plan, UNLIMITED
from invoicely.utils import slugify, to_decimal

logger = logging.getLogger(__name__)


DEFAULT_PLANS = [
    {
        "name": "Free",
        "slug": "free",
        "description": "For freelancers getting started.",
        "price": Decimal("0.00"),
        "trial_days": 0,
        "max_invoices": 5,
        "max_customers": 5,
        "max_items": 10,
        "max_users": 1,
        "is_default": True,
    },
    {
        "name": "Pro",
        "slug": "pro",
        "description": "For growing businesses.",
        "price": Decimal("5000.00"),
        "trial_days": 7,
        "max_invoices": 100,
        "max_customers": 100,
        "max_items": 200,
        "max_users": 3,
        "can_use_premium_templates": True,
        "can_customize_templates": True,
        "can_use_reporting": True,
        "can_export_data": True,
        "can_use_whatsapp": True,
    },
    {
        "name": "Business",
        "slug": "business",
        "description": "Unlimited everything.",
        "price": Decimal("15000.00"),
        "trial_days": 7,
        "max_invoices": UNLIMITED,
        "max_customers": UNLIMITED,
        "max_items": UNLIMITED,
        "max_users": UNLIMITED,
        "can_use_premium_templates": True,
        "can_customize_templates": True,
        "can_use_reporting": True,
        "can_export_data": True,
        "can_remove_branding": True,
        "can_use_whatsapp": True,
        "can_use_sms": True,
    },
]

EDITABLE_FIELDS = (
    ["name", "description", "currency", "billing_period", "trial_days",
     "is_active", "is_default"]
    + list(Plan.RESOURCE_LIMITS.values())
    + list(Plan.FEATURES.values())
)


def list_active_plans():
    return (
        Plan.query
        .filter_by(is_active=True)
        .order_by(Plan.price.asc())
        .all()
    )


def get_default_plan():
    return Plan.query.filter_by(is_default=True, is_active=True).first()


def get_trial_plan(slug):
    """The plan new tenants trial on: ``slug`` if active, else the default plan."""
    plan = None
    if slug:
        plan = Plan.query.filter_by(slug=slug, is_active=True).first()
    if plan is None:
        logger.warning(f"Trial plan {slug!r} not found, using default plan")
        plan = get_default_plan()
    return plan


def _clear_other_defaults(plan):
    (
        Plan.query
        .filter(Plan.id != plan.id, Plan.is_default.is_(True))
        .update({"is_default": False}, synchronize_session="fetch")
    )


def save_plan(data, plan=None):
    """Create or update a plan from a JSON body. Flushes; caller commits.

    Raises ValueError on invalid input.
    """
    creating = plan is None
    if creating:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValueError("name is required.")
        if "price" not in data:
            raise ValueError("price is required.")
        slug = data.get("slug") or slugify(name)
        if Plan.query.filter_by(slug=slug).first():
            raise ValueError(f"Plan slug {slug!r} already exists.")
        plan = Plan(
            name=name,
            slug=slug,
            billing_period=Plan.MONTHLY,
            trial_days=0,
            is_active=True,
            is_default=False,
        )

    if "price" in data:
        price = to_decimal(data["price"], "price")
        if price < 0:
            raise ValueError("price must not be negative.")
        plan.price = price

    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(plan, field, data[field])

    if plan.billing_period not in Plan.BILLING_PERIODS:
        raise ValueError(f"billing_period must be one of {Plan.BILLING_PERIODS}.")

    if creating:
        db.session.add(plan)
    db.session.flush()
    if plan.is_default:
        _clear_other_defaults(plan)
    return plan


def seed_default_plans():
    """Insert the stock plans that don't exist yet. Returns the created slugs."""
    created = []
    for spec in DEFAULT_PLANS:
        if Plan.query.filter_by(slug=spec["slug"]).first():
            continue
        db.session.add(Plan(**spec))
        created.append(spec["slug"])
    db.session.commit()
    return created
