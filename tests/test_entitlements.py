"""Tests for the entitlement engine and the create-endpoint gate.

Covers:
- Resource limits (boundary, unlimited sentinel, inactive subscriptions)
- Feature access (trial override by timestamp, ACTIVE plan flags)
- Usage stats and trial day counting
- LimitReached / FeatureUnavailable over HTTP
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

from helpers import login, make_invoice, set_plan
from invoicely.extensions import db
from invoicely.models.customer import Customer
from invoicely.models.subscription import Subscription
from invoicely.services import entitlement_service
from invoicely.services.entitlement_service import (
    check_feature_access,
    check_resource_limit,
    get_usage_stats,
    trial_days_remaining,
)
from invoicely.utils import utcnow


def _add_invoices(seed_data, count):
    for n in range(1, count + 1):
        make_invoice(seed_data["tenant_id"], seed_data["customer_id"],
                     total="100.00", number=f"INV-{n:04d}")


class TestResourceLimits:
    """check_resource_limit() against the Free plan (5 invoices)."""

    def test_four_of_five_allowed(self, seed_data):
        _add_invoices(seed_data, 4)
        check = check_resource_limit(seed_data["tenant_id"], "invoices")
        assert check.allowed is True
        assert check.limit == 5
        assert check.current == 4

    def test_five_of_five_denied(self, seed_data):
        _add_invoices(seed_data, 5)
        check = check_resource_limit(seed_data["tenant_id"], "invoices")
        assert check.allowed is False
        assert check.limit == 5
        assert check.current == 5
        assert "limit" in check.reason

    def test_unlimited_never_counts(self, seed_data):
        """limit -1 answers without issuing a count query."""
        set_plan(seed_data["tenant_id"], "business")
        fake_model = MagicMock()
        with patch.dict(entitlement_service.RESOURCE_MODELS, {"invoices": fake_model}):
            check = check_resource_limit(seed_data["tenant_id"], "invoices")
        assert check.allowed is True
        assert check.limit == -1
        fake_model.query.filter_by.assert_not_called()

    def test_no_subscription_denied(self, seed_data):
        Subscription.query.filter_by(tenant_id=seed_data["tenant_id"]).delete()
        db.session.commit()
        check = check_resource_limit(seed_data["tenant_id"], "customers")
        assert check.allowed is False
        assert check.reason == "No active subscription found"

    def test_canceled_subscription_denied(self, seed_data):
        set_plan(seed_data["tenant_id"], "business", status=Subscription.CANCELED)
        check = check_resource_limit(seed_data["tenant_id"], "customers")
        assert check.allowed is False
        assert check.reason == "Subscription is not active"

    def test_past_due_subscription_denied(self, seed_data):
        set_plan(seed_data["tenant_id"], "pro", status=Subscription.PAST_DUE)
        assert check_resource_limit(seed_data["tenant_id"], "items").allowed is False


class TestFeatureAccess:
    """check_feature_access(): trial override, then plan flags."""

    def test_free_plan_has_no_reporting(self, seed_data):
        assert check_feature_access(seed_data["tenant_id"], "reporting") is False

    def test_active_plan_flag(self, seed_data):
        set_plan(seed_data["tenant_id"], "pro")
        assert check_feature_access(seed_data["tenant_id"], "reporting") is True
        # Pro has no SMS
        assert check_feature_access(seed_data["tenant_id"], "sms") is False

    def test_column_name_accepted(self, seed_data):
        set_plan(seed_data["tenant_id"], "business")
        assert check_feature_access(seed_data["tenant_id"], "can_use_sms") is True

    def test_trial_unlocks_every_feature(self, seed_data):
        set_plan(seed_data["tenant_id"], "free", status=Subscription.TRIALING,
                 trial_ends_at=utcnow() + timedelta(days=3))
        for feature in ("reporting", "export_data", "sms", "whatsapp", "remove_branding"):
            assert check_feature_access(seed_data["tenant_id"], feature) is True

    def test_lapsed_trial_is_denied(self, seed_data):
        """TRIALING row whose trial_ends_at has passed: no override, not ACTIVE."""
        set_plan(seed_data["tenant_id"], "business", status=Subscription.TRIALING,
                 trial_ends_at=utcnow() - timedelta(minutes=1))
        assert check_feature_access(seed_data["tenant_id"], "reporting") is False

    def test_canceled_is_denied(self, seed_data):
        set_plan(seed_data["tenant_id"], "business", status=Subscription.CANCELED)
        assert check_feature_access(seed_data["tenant_id"], "reporting") is False


class TestUsageStats:

    def test_counts_and_percentages(self, seed_data):
        _add_invoices(seed_data, 2)
        stats = get_usage_stats(seed_data["tenant_id"])
        assert stats["invoices"] == {"used": 2, "limit": 5, "unlimited": False, "percentage": 40}
        assert stats["customers"]["used"] == 1

    def test_unlimited_reports_zero_percent(self, seed_data):
        set_plan(seed_data["tenant_id"], "business")
        stats = get_usage_stats(seed_data["tenant_id"])
        assert stats["invoices"]["unlimited"] is True
        assert stats["invoices"]["percentage"] == 0

    def test_trial_days_remaining_rounds_up(self, seed_data):
        now = utcnow()
        subscription = set_plan(seed_data["tenant_id"], "pro", status=Subscription.TRIALING,
                                trial_ends_at=now + timedelta(days=2, hours=1))
        assert trial_days_remaining(subscription, now) == 3
        assert trial_days_remaining(subscription, now + timedelta(days=5)) == 0


class TestCreateGate:
    """The create endpoints enforce limits before inserting."""

    def test_invoice_create_denied_at_limit(self, client, seed_data):
        _add_invoices(seed_data, 5)
        login(client)
        resp = client.post("/api/invoices", json={
            "customer_id": seed_data["customer_id"],
            "items": [{"description": "Design", "quantity": 1, "price": 100}],
        })
        assert resp.status_code == 403
        body = resp.get_json()
        assert body["kind"] == "limit_reached"
        assert body["limit"] == 5
        assert body["current"] == 5

    def test_invoice_create_allowed_below_limit(self, client, seed_data):
        _add_invoices(seed_data, 4)
        login(client)
        resp = client.post("/api/invoices", json={
            "customer_id": seed_data["customer_id"],
            "items": [{"description": "Design", "quantity": 2, "price": 150.5}],
            "tax_amount": 10,
        })
        assert resp.status_code == 201
        invoice = resp.get_json()["invoice"]
        assert invoice["invoice_number"] == "INV-0005"
        assert invoice["subtotal"] == 301.0
        assert invoice["total"] == 311.0

    def test_customer_create_denied_at_limit(self, client, seed_data):
        for n in range(4):
            db.session.add(Customer(tenant_id=seed_data["tenant_id"], name=f"C{n}"))
        db.session.commit()
        login(client)
        resp = client.post("/api/customers", json={"name": "Sixth"})
        assert resp.status_code == 403
        assert resp.get_json()["kind"] == "limit_reached"
        assert Customer.query.filter_by(tenant_id=seed_data["tenant_id"]).count() == 5

    def test_unlimited_plan_creates_freely(self, client, seed_data):
        set_plan(seed_data["tenant_id"], "business")
        _add_invoices(seed_data, 5)
        login(client)
        resp = client.post("/api/invoices", json={
            "customer_id": seed_data["customer_id"],
            "items": [{"description": "Design", "price": 100}],
        })
        assert resp.status_code == 201

    def test_feature_denied_over_http(self, client, seed_data):
        login(client)
        resp = client.get("/api/reports/transactions")
        assert resp.status_code == 403
        body = resp.get_json()
        assert body["kind"] == "feature_unavailable"
        assert body["feature"] == "reporting"
