"""Tests for receipt numbering and manual receipts."""

import pytest

from helpers import login
from invoicely.errors import ValidationError
from invoicely.extensions import db
from invoicely.models.audit import AuditLog
from invoicely.models.customer import Customer
from invoicely.models.receipt import Receipt
from invoicely.models.tenant import Tenant
from invoicely.services.receipt_service import (
    create_manual_receipt,
    format_receipt_number,
    issue_receipt,
)
from invoicely.utils import utcnow


def test_format_receipt_number():
    assert format_receipt_number(1) == "REC-0001"
    assert format_receipt_number(42) == "REC-0042"
    assert format_receipt_number(12345) == "REC-12345"


class TestNumbering:

    def test_sequence_is_per_tenant(self, seed_data):
        globex_customer = Customer(tenant_id=seed_data["other_tenant_id"], name="Grace")
        db.session.add(globex_customer)
        db.session.flush()

        ours = [
            issue_receipt(seed_data["tenant_id"], seed_data["customer_id"], 10, "NGN",
                          "Cash", None, utcnow())
            for _ in range(2)
        ]
        theirs = issue_receipt(seed_data["other_tenant_id"], globex_customer.id, 10, "NGN",
                               "Cash", None, utcnow())
        db.session.commit()

        assert [r.receipt_number for r in ours] == ["REC-0001", "REC-0002"]
        assert theirs.receipt_number == "REC-0001"
        assert db.session.get(Tenant, seed_data["tenant_id"]).receipt_sequence == 2

    def test_rolled_back_issue_releases_number(self, seed_data):
        customer_id = seed_data["customer_id"]
        issue_receipt(seed_data["tenant_id"], customer_id, 10, "NGN", "Cash", None, utcnow())
        db.session.rollback()

        receipt = issue_receipt(seed_data["tenant_id"], customer_id, 10, "NGN", "Cash",
                                None, utcnow())
        db.session.commit()
        assert receipt.receipt_number == "REC-0001"

    def test_invalid_amount(self, seed_data):
        customer_id = seed_data["customer_id"]
        with pytest.raises(ValidationError):
            create_manual_receipt(seed_data["tenant_id"], {"customer_id": customer_id, "amount": "abc"})
        with pytest.raises(ValidationError):
            create_manual_receipt(seed_data["tenant_id"], {"customer_id": customer_id, "amount": 0})
        assert Receipt.query.count() == 0


class TestManualReceipts:

    def test_create_update_delete(self, client, seed_data):
        login(client)
        resp = client.post("/api/receipts", json={
            "customer_id": seed_data["customer_id"],
            "amount": 5000,
            "payment_method": "Cash",
            "notes": "Walk-in",
        })
        assert resp.status_code == 201
        receipt = resp.get_json()["receipt"]
        assert receipt["receipt_number"] == "REC-0001"
        assert receipt["currency"] == "NGN"

        resp = client.patch(f"/api/receipts/{receipt['id']}", json={"amount": 5500})
        assert resp.status_code == 200
        assert resp.get_json()["receipt"]["amount"] == 5500.0

        resp = client.delete(f"/api/receipts/{receipt['id']}")
        assert resp.status_code == 200
        assert Receipt.query.count() == 0

        actions = [a.action for a in AuditLog.query.all()]
        assert sorted(actions) == ["RECEIPT_CREATED", "RECEIPT_DELETED", "RECEIPT_UPDATED"]
        updated = AuditLog.query.filter_by(action="RECEIPT_UPDATED").one()
        assert updated.metadata_["changes"] == {"amount": 5500.0}

    def test_numbers_keep_counting_after_delete(self, client, seed_data):
        login(client)
        body = {"customer_id": seed_data["customer_id"], "amount": 10}
        first = client.post("/api/receipts", json=body).get_json()["receipt"]
        client.delete(f"/api/receipts/{first['id']}")
        second = client.post("/api/receipts", json=body).get_json()["receipt"]
        assert second["receipt_number"] == "REC-0002"

    def test_foreign_customer_rejected(self, client, seed_data):
        login(client, "owner@globex.test")
        resp = client.post("/api/receipts", json={
            "customer_id": seed_data["customer_id"], "amount": 10,
        })
        assert resp.status_code == 404

    def test_send_by_email(self, client, seed_data, notifier):
        login(client)
        receipt = client.post("/api/receipts", json={
            "customer_id": seed_data["customer_id"], "amount": 10,
        }).get_json()["receipt"]
        resp = client.post(f"/api/receipts/{receipt['id']}/send", json={"channel": "email"})
        assert resp.status_code == 200
        assert notifier.emails[0]["context"]["receipt_number"] == "REC-0001"

    def test_customer_required(self, client, seed_data):
        login(client)
        resp = client.post("/api/receipts", json={"amount": 10, "payment_method": "Cash"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "customer_id is required."
        assert Receipt.query.count() == 0
        assert db.session.get(Tenant, seed_data["tenant_id"]).receipt_sequence == 0
