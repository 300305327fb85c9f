"""Tests for the transaction report and CSV export."""

from datetime import datetime, timezone

from helpers import charge_event, login, make_invoice, make_payment, post_webhook, set_plan
from invoicely.extensions import db
from invoicely.services.report_service import list_transactions, summarize, to_csv


def _paid_invoice(client, seed_data):
    invoice = make_invoice(seed_data["tenant_id"], seed_data["customer_id"])
    make_payment(seed_data["tenant_id"], "INV-REF-1", invoice_id=invoice.id)
    post_webhook(client, charge_event("INV-REF-1"))
    return invoice


class TestTransactionFeed:

    def test_unified_rows_and_summary(self, client, seed_data):
        _paid_invoice(client, seed_data)
        rows = list_transactions(seed_data["tenant_id"])
        assert sorted(row["type"] for row in rows) == ["invoice", "payment", "receipt"]

        summary = summarize(rows)
        assert summary == {"invoiced": 16125.0, "paid": 16125.0, "receipted": 16125.0, "count": 3}

    def test_type_and_customer_filters(self, client, seed_data):
        _paid_invoice(client, seed_data)
        rows = list_transactions(seed_data["tenant_id"], types=("receipt",))
        assert [row["reference"] for row in rows] == ["REC-0001"]
        assert list_transactions(seed_data["tenant_id"], customer_id="someone-else") == []

    def test_end_date_includes_whole_day(self, seed_data):
        invoice = make_invoice(seed_data["tenant_id"], seed_data["customer_id"])
        invoice.issue_date = datetime(2026, 3, 10, 18, 30, tzinfo=timezone.utc)
        db.session.commit()

        day = datetime(2026, 3, 10, tzinfo=timezone.utc)
        rows = list_transactions(seed_data["tenant_id"], start=day, end=day, types=("invoice",))
        assert len(rows) == 1
        rows = list_transactions(seed_data["tenant_id"],
                                 start=datetime(2026, 3, 11, tzinfo=timezone.utc),
                                 types=("invoice",))
        assert rows == []

    def test_other_tenants_excluded(self, client, seed_data):
        _paid_invoice(client, seed_data)
        assert list_transactions(seed_data["other_tenant_id"]) == []

    def test_csv_layout(self, client, seed_data):
        _paid_invoice(client, seed_data)
        text = to_csv(list_transactions(seed_data["tenant_id"], types=("receipt",)))
        lines = text.strip().splitlines()
        assert lines[0] == "date,type,reference,customer,description,amount,currency,status,payment_status"
        assert ",receipt,REC-0001,Ada Customer," in lines[1]
        assert ",16125.00,NGN,ISSUED," in lines[1]


class TestReportEndpoint:

    def test_free_plan_denied(self, client, seed_data):
        login(client)
        resp = client.get("/api/reports/transactions")
        assert resp.status_code == 403
        assert resp.get_json()["feature"] == "reporting"

    def test_json_report(self, client, seed_data):
        set_plan(seed_data["tenant_id"], "pro")
        _paid_invoice(client, seed_data)
        login(client)
        resp = client.get("/api/reports/transactions?limit=2")
        assert resp.status_code == 200
        body = resp.get_json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
        assert body["summary"]["paid"] == 16125.0

    def test_csv_download(self, client, seed_data):
        set_plan(seed_data["tenant_id"], "pro")
        _paid_invoice(client, seed_data)
        login(client)
        resp = client.get("/api/reports/transactions?format=csv")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert resp.headers["Content-Disposition"].startswith("attachment; filename=transactions_")
        assert "REC-0001" in resp.get_data(as_text=True)

    def test_bad_type(self, client, seed_data):
        set_plan(seed_data["tenant_id"], "pro")
        login(client)
        resp = client.get("/api/reports/transactions?type=refund")
        assert resp.status_code == 400

    def test_bad_date(self, client, seed_data):
        set_plan(seed_data["tenant_id"], "pro")
        login(client)
        resp = client.get("/api/reports/transactions?start_date=yesterday")
        assert resp.status_code == 400
