"""Tests for tenant taxes and their use on invoices.

Covers:
- CRUD with name and rate validation
- A single default tax per tenant
- Tenant isolation
- Rate-derived tax on invoices, the default tax on new invoices
- Deleting a tax leaves invoice amounts alone
"""

from helpers import login
from invoicely.extensions import db
from invoicely.models.audit import AuditLog
from invoicely.models.invoice import Invoice
from invoicely.models.tax import Tax


def _create_tax(client, **body):
    body.setdefault("name", "VAT")
    body.setdefault("rate", 7.5)
    resp = client.post("/api/taxes", json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["tax"]


def _create_invoice(client, seed_data, **extra):
    body = {
        "customer_id": seed_data["customer_id"],
        "items": [{"description": "Logo design", "quantity": 1, "price": 16125}],
    }
    body.update(extra)
    resp = client.post("/api/invoices", json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["invoice"]


class TestTaxCrud:

    def test_create_update_delete(self, client, seed_data):
        login(client)
        tax = _create_tax(client, description="Value added tax")
        assert tax["rate"] == 7.5
        assert tax["is_default"] is False

        resp = client.patch(f"/api/taxes/{tax['id']}", json={"rate": 10})
        assert resp.status_code == 200
        assert resp.get_json()["tax"]["rate"] == 10.0
        assert resp.get_json()["tax"]["name"] == "VAT"

        resp = client.get(f"/api/taxes/{tax['id']}")
        assert resp.get_json()["tax"]["description"] == "Value added tax"

        assert client.delete(f"/api/taxes/{tax['id']}").status_code == 200
        assert Tax.query.count() == 0

        actions = sorted(a.action for a in AuditLog.query.all())
        assert actions == ["TAX_CREATED", "TAX_DELETED", "TAX_UPDATED"]

    def test_rate_bounds(self, client, seed_data):
        login(client)
        assert client.post("/api/taxes", json={"name": "VAT", "rate": 101}).status_code == 400
        assert client.post("/api/taxes", json={"name": "VAT", "rate": -1}).status_code == 400
        assert client.post("/api/taxes", json={"name": "VAT"}).status_code == 400
        assert client.post("/api/taxes", json={"name": "Zero", "rate": 0}).status_code == 201
        assert client.post("/api/taxes", json={"name": "All", "rate": 100}).status_code == 201

    def test_short_name(self, client, seed_data):
        login(client)
        resp = client.post("/api/taxes", json={"name": "V", "rate": 5})
        assert resp.status_code == 400
        assert Tax.query.count() == 0

    def test_single_default_per_tenant(self, client, seed_data):
        login(client)
        vat = _create_tax(client, is_default=True)
        wht = _create_tax(client, name="WHT", rate=5, is_default=True)
        assert db.session.get(Tax, vat["id"]).is_default is False
        assert db.session.get(Tax, wht["id"]).is_default is True

        client.patch(f"/api/taxes/{vat['id']}", json={"is_default": True})
        defaults = Tax.query.filter_by(tenant_id=seed_data["tenant_id"], is_default=True).all()
        assert [t.id for t in defaults] == [vat["id"]]

        listed = client.get("/api/taxes").get_json()["taxes"]
        assert listed[0]["id"] == vat["id"]

    def test_default_is_per_tenant(self, client, seed_data):
        login(client)
        ours = _create_tax(client, is_default=True)
        client.post("/api/auth/logout")
        login(client, "owner@globex.test")
        _create_tax(client, name="Sales tax", rate=5, is_default=True)
        assert db.session.get(Tax, ours["id"]).is_default is True

    def test_other_tenant_cannot_see_tax(self, client, seed_data):
        login(client)
        tax = _create_tax(client)
        client.post("/api/auth/logout")
        login(client, "owner@globex.test")
        assert client.get(f"/api/taxes/{tax['id']}").status_code == 404
        assert client.patch(f"/api/taxes/{tax['id']}", json={"rate": 1}).status_code == 404
        assert client.delete(f"/api/taxes/{tax['id']}").status_code == 404
        assert client.get("/api/taxes").get_json()["taxes"] == []


class TestInvoiceTax:

    def test_rate_applied_to_subtotal(self, client, seed_data):
        login(client)
        tax = _create_tax(client)
        invoice = _create_invoice(client, seed_data, tax_id=tax["id"])
        assert invoice["tax_id"] == tax["id"]
        assert invoice["tax_rate"] == 7.5
        assert invoice["subtotal"] == 16125.0
        assert invoice["tax_amount"] == 1209.38
        assert invoice["total"] == 17334.38

    def test_line_change_recomputes_tax(self, client, seed_data):
        login(client)
        tax = _create_tax(client, rate=10)
        invoice = _create_invoice(client, seed_data, tax_id=tax["id"])
        resp = client.patch(f"/api/invoices/{invoice['id']}", json={
            "items": [{"description": "Logo design", "quantity": 2, "price": 500}],
        })
        body = resp.get_json()["invoice"]
        assert body["tax_amount"] == 100.0
        assert body["total"] == 1100.0

    def test_flat_amount_drops_rate(self, client, seed_data):
        login(client)
        tax = _create_tax(client)
        invoice = _create_invoice(client, seed_data, tax_id=tax["id"])
        resp = client.patch(f"/api/invoices/{invoice['id']}", json={"tax_amount": 125})
        body = resp.get_json()["invoice"]
        assert body["tax_id"] is None
        assert body["tax_rate"] is None
        assert body["total"] == 16250.0

    def test_default_tax_on_new_invoice(self, client, seed_data):
        login(client)
        tax = _create_tax(client, is_default=True)
        invoice = _create_invoice(client, seed_data)
        assert invoice["tax_id"] == tax["id"]
        assert invoice["tax_amount"] == 1209.38

        untaxed = _create_invoice(client, seed_data, tax_id=None)
        assert untaxed["tax_amount"] == 0.0
        assert untaxed["total"] == 16125.0

    def test_foreign_tax_rejected(self, client, seed_data):
        foreign = Tax(tenant_id=seed_data["other_tenant_id"], name="Sales tax", rate=5)
        db.session.add(foreign)
        db.session.commit()
        login(client)
        body = {
            "customer_id": seed_data["customer_id"],
            "tax_id": foreign.id,
            "items": [{"description": "Logo design", "quantity": 1, "price": 100}],
        }
        assert client.post("/api/invoices", json=body).status_code == 404
        assert Invoice.query.count() == 0

    def test_deleting_tax_keeps_invoice_amounts(self, client, seed_data):
        login(client)
        tax = _create_tax(client)
        invoice = _create_invoice(client, seed_data, tax_id=tax["id"])
        assert client.delete(f"/api/taxes/{tax['id']}").status_code == 200

        saved = db.session.get(Invoice, invoice["id"])
        assert saved.tax_id is None
        assert float(saved.tax_rate) == 7.5
        assert float(saved.tax_amount) == 1209.38
        assert float(saved.total) == 17334.38

    def test_rate_edit_does_not_touch_existing_invoice(self, client, seed_data):
        login(client)
        tax = _create_tax(client)
        invoice = _create_invoice(client, seed_data, tax_id=tax["id"])
        client.patch(f"/api/taxes/{tax['id']}", json={"rate": 20})
        resp = client.patch(f"/api/invoices/{invoice['id']}", json={"notes": "Thanks"})
        assert resp.get_json()["invoice"]["tax_amount"] == 1209.38
