"""Tests for tenant isolation, access control and response hardening.

Covers:
- Every tenant-scoped lookup answers 404 for another tenant's records
- Lists only show the caller's tenant
- Suspended / deleted tenants are locked out
- Security headers and JSON error bodies
"""

import pytest

from helpers import login, make_invoice
from invoicely.extensions import db
from invoicely.models.invoice import Invoice
from invoicely.models.receipt import Receipt
from invoicely.models.tenant import Tenant
from invoicely.services.receipt_service import issue_receipt
from invoicely.utils import utcnow


@pytest.fixture
def acme_records(seed_data):
    invoice = make_invoice(seed_data["tenant_id"], seed_data["customer_id"])
    receipt = issue_receipt(seed_data["tenant_id"], seed_data["customer_id"], 10, "NGN",
                            "Cash", None, utcnow())
    db.session.commit()
    return {"invoice_id": invoice.id, "receipt_id": receipt.id,
            "customer_id": seed_data["customer_id"]}


class TestTenantIsolation:

    @pytest.mark.parametrize("path", [
        "/api/invoices/{invoice_id}",
        "/api/receipts/{receipt_id}",
        "/api/customers/{customer_id}",
    ])
    def test_foreign_record_is_not_found(self, client, acme_records, path):
        login(client, "owner@globex.test")
        resp = client.get(path.format(**acme_records))
        assert resp.status_code == 404

    def test_foreign_invoice_cannot_be_changed(self, client, acme_records):
        login(client, "owner@globex.test")
        invoice_id = acme_records["invoice_id"]
        assert client.patch(f"/api/invoices/{invoice_id}", json={"notes": "x"}).status_code == 404
        assert client.delete(f"/api/invoices/{invoice_id}").status_code == 404
        assert client.post(f"/api/invoices/{invoice_id}/mark-paid",
                           json={"payment_method": "Cash"}).status_code == 404
        assert db.session.get(Invoice, invoice_id).payment_status == Invoice.UNPAID

    def test_foreign_receipt_cannot_be_deleted(self, client, acme_records):
        login(client, "owner@globex.test")
        assert client.delete(f"/api/receipts/{acme_records['receipt_id']}").status_code == 404
        assert db.session.get(Receipt, acme_records["receipt_id"]) is not None

    def test_lists_are_scoped(self, client, acme_records):
        login(client, "owner@globex.test")
        for path in ("/api/invoices", "/api/receipts", "/api/customers"):
            body = client.get(path).get_json()
            assert body["data"] == []
            assert body["pagination"]["total"] == 0

    def test_foreign_customer_on_new_invoice(self, client, acme_records):
        login(client, "owner@globex.test")
        resp = client.post("/api/invoices", json={
            "customer_id": acme_records["customer_id"],
            "items": [{"description": "x", "price": 1}],
        })
        assert resp.status_code == 404


class TestAccessControl:

    def test_unauthenticated_json_401(self, client, seed_data):
        resp = client.get("/api/invoices")
        assert resp.status_code == 401
        assert resp.get_json()["kind"] == "unauthorized"

    def test_deleted_tenant_locked_out(self, client, seed_data):
        tenant = db.session.get(Tenant, seed_data["tenant_id"])
        tenant.status = Tenant.DELETED
        db.session.commit()
        login(client)
        assert client.get("/api/invoices").status_code == 403

    def test_webhook_needs_no_session(self, client, seed_data):
        resp = client.post("/webhooks/payments", data="{}", content_type="application/json")
        assert resp.status_code == 400


class TestResponseHardening:

    def test_security_headers(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["Cache-Control"] == "no-store"

    def test_unknown_route_is_json(self, client):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert resp.get_json()["kind"] == "not_found"

    def test_wrong_method_is_json(self, client):
        resp = client.put("/health")
        assert resp.status_code == 405
        assert "error" in resp.get_json()
