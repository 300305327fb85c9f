"""Transaction history report: invoices, payments and receipts in one feed.

CSV export follows the csv.DictWriter + StringIO pattern; the caller wraps
the text in a Response with a download filename.
"""

import csv
import io
from datetime import timedelta
from decimal import Decimal

from invoicely.models.invoice import Invoice
from invoicely.models.payment import Payment
from invoicely.models.receipt import Receipt
from invoicely.utils import as_utc, iso, money, utcnow

TRANSACTION_TYPES = ("invoice", "payment", "receipt")
CSV_FIELDS = [
    "date", "type", "reference", "customer", "description",
    "amount", "currency", "status", "payment_status",
]


def _customer(customer):
    if customer is None:
        return None
    return {"id": customer.id, "name": customer.name, "email": customer.email}


def _in_range(value, start, end):
    value = as_utc(value)
    if value is None:
        return not (start or end)
    if start and value < start:
        return False
    if end and value >= end:
        return False
    return True


def list_transactions(tenant_id, start=None, end=None, types=None, customer_id=None):
    """Unified, newest-first transaction list. ``end`` is inclusive of its day."""
    types = types or TRANSACTION_TYPES
    if end is not None:
        end = end + timedelta(days=1)
    rows = []

    if "invoice" in types:
        query = Invoice.query.filter_by(tenant_id=tenant_id)
        if customer_id:
            query = query.filter_by(customer_id=customer_id)
        for invoice in query.all():
            if not _in_range(invoice.issue_date, start, end):
                continue
            rows.append({
                "id": invoice.id,
                "type": "invoice",
                "date": as_utc(invoice.issue_date),
                "reference": invoice.invoice_number,
                "customer": _customer(invoice.customer),
                "description": f"Invoice for {len(invoice.lines)} item(s)",
                "amount": invoice.total,
                "currency": invoice.currency,
                "status": invoice.status,
                "payment_status": invoice.payment_status,
            })

    if "payment" in types:
        query = Payment.query.filter_by(tenant_id=tenant_id)
        if customer_id:
            query = query.filter(
                (Payment.customer_id == customer_id)
                | Payment.invoice.has(Invoice.customer_id == customer_id)
            )
        for payment in query.all():
            when = payment.paid_at or payment.created_at
            if not _in_range(when, start, end):
                continue
            customer = payment.customer or (payment.invoice.customer if payment.invoice else None)
            if payment.invoice is not None:
                description = f"Payment for Invoice {payment.invoice.invoice_number}"
            elif payment.purpose == Payment.PURPOSE_UPGRADE:
                description = "Subscription upgrade"
            else:
                description = "Payment received"
            rows.append({
                "id": payment.id,
                "type": "payment",
                "date": as_utc(when),
                "reference": payment.reference,
                "customer": _customer(customer),
                "description": description,
                "amount": payment.amount,
                "currency": payment.currency,
                "status": payment.status,
                "payment_status": None,
            })

    if "receipt" in types:
        query = Receipt.query.filter_by(tenant_id=tenant_id)
        if customer_id:
            query = query.filter_by(customer_id=customer_id)
        for receipt in query.all():
            if not _in_range(receipt.issue_date, start, end):
                continue
            rows.append({
                "id": receipt.id,
                "type": "receipt",
                "date": as_utc(receipt.issue_date),
                "reference": receipt.receipt_number,
                "customer": _customer(receipt.customer),
                "description": receipt.notes or "Receipt",
                "amount": receipt.amount,
                "currency": receipt.currency,
                "status": "ISSUED",
                "payment_status": None,
            })

    rows.sort(key=lambda row: row["date"] or utcnow(), reverse=True)
    return rows


def summarize(rows):
    totals = {"invoiced": Decimal("0"), "paid": Decimal("0"), "receipted": Decimal("0")}
    for row in rows:
        if row["type"] == "invoice" and row["status"] != Invoice.CANCELED:
            totals["invoiced"] += row["amount"]
        elif row["type"] == "payment" and row["status"] == Payment.SUCCESS:
            totals["paid"] += row["amount"]
        elif row["type"] == "receipt":
            totals["receipted"] += row["amount"]
    summary = {key: money(value) for key, value in totals.items()}
    summary["count"] = len(rows)
    return summary


def serialize(row):
    data = dict(row)
    data["date"] = iso(row["date"])
    data["amount"] = money(row["amount"])
    return data


def to_csv(rows):
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=CSV_FIELDS, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({
            "date": iso(row["date"]),
            "type": row["type"],
            "reference": row["reference"],
            "customer": row["customer"]["name"] if row["customer"] else "",
            "description": row["description"],
            "amount": f"{row['amount']:.2f}",
            "currency": row["currency"],
            "status": row["status"],
            "payment_status": row["payment_status"] or "",
        })
    return output.getvalue()
