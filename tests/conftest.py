"""Shared test fixtures for the Invoicely test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- gateway / notifier: fakes swapped into app.extensions for every test
- seed_data: plans, two tenants with owners, a customer, an admin user
"""

from datetime import timedelta

import pytest
from werkzeug.security import generate_password_hash

from helpers import PASSWORD, FakeGateway, FakeNotifier, IsolatedClient
from invoicely import create_app
from invoicely.extensions import db as _db
from invoicely.models.customer import Customer
from invoicely.models.plan import Plan
from invoicely.models.subscription import Subscription
from invoicely.models.tenant import Tenant
from invoicely.models.user import User
from invoicely.services.plan_service import seed_default_plans
from invoicely.utils import utcnow


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    app.test_client_class = IsolatedClient
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture(autouse=True)
def gateway(app):
    fake = FakeGateway()
    original = app.extensions["payment_gateway"]
    app.extensions["payment_gateway"] = fake
    yield fake
    app.extensions["payment_gateway"] = original


@pytest.fixture(autouse=True)
def notifier(app):
    fake = FakeNotifier()
    original = app.extensions["notifier"]
    app.extensions["notifier"] = fake
    yield fake
    app.extensions["notifier"] = original


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def _make_tenant(name, slug, owner_email, plan, status=Subscription.ACTIVE):
    tenant = Tenant(
        company_name=name,
        slug=slug,
        email=owner_email,
        currency="NGN",
        status=Tenant.ACTIVE,
        receipt_sequence=0,
    )
    _db.session.add(tenant)
    _db.session.flush()

    owner = User(
        email=owner_email,
        password_hash=generate_password_hash(PASSWORD),
        full_name=f"{name} Owner",
        tenant_id=tenant.id,
    )
    _db.session.add(owner)

    now = utcnow()
    subscription = Subscription(
        tenant_id=tenant.id,
        plan_id=plan.id,
        status=status,
        current_period_start=now,
        current_period_end=now + timedelta(days=30),
        cancel_at_period_end=False,
    )
    _db.session.add(subscription)
    _db.session.flush()
    return tenant, owner, subscription


@pytest.fixture
def seed_data(app, db_session):
    """Seed plans, two tenants on the Free plan (ACTIVE), a customer, an admin.

    Returns plain IDs so tests can use them after the objects expire.
    """
    seed_default_plans()
    plans = {plan.slug: plan for plan in Plan.query.all()}

    admin = User(
        email="admin@invoicely.test",
        password_hash=generate_password_hash(PASSWORD),
        full_name="Platform Admin",
        is_admin=True,
    )
    _db.session.add(admin)

    tenant, owner, subscription = _make_tenant(
        "Acme Ltd", "acme-ltd", "owner@acme.test", plans["free"]
    )
    other, other_owner, _ = _make_tenant(
        "Globex", "globex", "owner@globex.test", plans["free"]
    )

    customer = Customer(
        tenant_id=tenant.id,
        name="Ada Customer",
        email="ada@customer.test",
        phone="08031234567",
    )
    _db.session.add(customer)
    _db.session.commit()

    return {
        "plans": {slug: plan.id for slug, plan in plans.items()},
        "admin_id": admin.id,
        "tenant_id": tenant.id,
        "owner_id": owner.id,
        "subscription_id": subscription.id,
        "other_tenant_id": other.id,
        "other_owner_id": other_owner.id,
        "customer_id": customer.id,
    }

