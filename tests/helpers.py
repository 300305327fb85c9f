"""Test doubles and request helpers shared by the test modules."""

import json
from decimal import Decimal

from flask import g
from flask.testing import FlaskClient

from invoicely.extensions import db
from invoicely.models.invoice import Invoice, InvoiceItem
from invoicely.models.payment import Payment
from invoicely.models.plan import Plan
from invoicely.models.subscription import Subscription
from invoicely.services.paystack_service import (
    Checkout,
    Transaction,
    compute_signature,
    from_minor_units,
)
from invoicely.utils import utcnow

SECRET_KEY = "sk_test_fake"
PASSWORD = "password123"

# ──────────────────────────────────────────────
# Test doubles
# ──────────────────────────────────────────────

class FakeGateway:
    """Stands in for PaystackClient. Records calls; verify answers from ``transactions``."""

    def __init__(self, secret_key=SECRET_KEY):
        self.secret_key = secret_key
        self.initialized = []
        self.verified = []
        self.transactions = {}
        self.verify_error = None

    def initialize_transaction(self, email, amount_minor_units, reference,
                               metadata=None, callback_url=None, currency=None):
        self.initialized.append({
            "email": email,
            "amount_minor_units": amount_minor_units,
            "reference": reference,
            "metadata": metadata or {},
            "callback_url": callback_url,
            "currency": currency,
        })
        return Checkout(
            authorization_url=f"https://checkout.paystack.test/{reference}",
            reference=reference,
            access_code=f"ac_{reference}",
        )

    def verify_transaction(self, reference):
        self.verified.append(reference)
        if self.verify_error is not None:
            raise self.verify_error
        return self.transactions.get(reference) or Transaction(
            reference=reference, status="abandoned", gateway_response="Abandoned"
        )

    def verify_webhook_signature(self, raw_body, signature):
        return bool(signature) and compute_signature(self.secret_key, raw_body) == signature

    def succeed(self, reference, amount_minor_units, **extra):
        """Make verify_transaction report ``reference`` as paid."""
        self.transactions[reference] = Transaction(
            reference=reference,
            status="success",
            amount_minor_units=amount_minor_units,
            currency=extra.pop("currency", "NGN"),
            gateway_response="Successful",
            channel="card",
            **extra,
        )


class FakeNotifier:
    """Records outbound messages instead of sending them."""

    whatsapp_api_enabled = False

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.emails = []
        self.sms = []
        self.whatsapp = []

    def send_email(self, to, subject, template, context=None):
        self.emails.append({"to": to, "subject": subject, "template": template,
                            "context": context or {}})
        return self.succeed

    def send_sms(self, to, message):
        self.sms.append({"to": to, "message": message})
        return self.succeed

    def send_whatsapp(self, to, message):
        self.whatsapp.append({"to": to, "message": message})
        return self.succeed

    def whatsapp_link(self, to, message):
        return f"https://wa.me/{to}"


class IsolatedClient(FlaskClient):
    """Test client that reloads the logged-in user on every request.

    The test app context stays pushed for the whole test, so ``g`` would
    otherwise carry Flask-Login's cached user from one request to the next.
    """

    def open(self, *args, **kwargs):
        g.pop("_login_user", None)
        return super().open(*args, **kwargs)


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────

def login(client, email="owner@acme.test", password=PASSWORD):
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp


def set_plan(tenant_id, plan_slug, status=Subscription.ACTIVE, trial_ends_at=None):
    """Move the tenant's subscription onto ``plan_slug`` with ``status``."""
    subscription = Subscription.query.filter_by(tenant_id=tenant_id).one()
    subscription.plan_id = Plan.query.filter_by(slug=plan_slug).one().id
    subscription.status = status
    subscription.trial_ends_at = trial_ends_at
    db.session.commit()
    return subscription


def make_invoice(tenant_id, customer_id, total="16125.00", number="INV-0001",
                 status=Invoice.SENT):
    total = Decimal(total)
    invoice = Invoice(
        tenant_id=tenant_id,
        customer_id=customer_id,
        invoice_number=number,
        issue_date=utcnow(),
        status=status,
        payment_status=Invoice.UNPAID,
        subtotal=total,
        tax_amount=Decimal("0.00"),
        total=total,
        currency="NGN",
    )
    invoice.lines = [InvoiceItem(
        position=0, description="Consulting", quantity=Decimal("1"),
        price=total, amount=total,
    )]
    db.session.add(invoice)
    db.session.commit()
    return invoice


def make_payment(tenant_id, reference, amount_minor_units=1612500,
                 purpose=Payment.PURPOSE_INVOICE, **purpose_key):
    payment = Payment(
        tenant_id=tenant_id,
        reference=reference,
        purpose=purpose,
        amount=from_minor_units(amount_minor_units),
        currency="NGN",
        payment_method="Paystack",
        status=Payment.PENDING,
        metadata_={},
        **purpose_key,
    )
    db.session.add(payment)
    db.session.commit()
    return payment


def charge_event(reference, amount_minor_units=1612500, event="charge.success",
                 status="success", **data):
    body = {
        "reference": reference,
        "status": status,
        "amount": amount_minor_units,
        "currency": "NGN",
        "gateway_response": "Successful" if status == "success" else "Declined",
        "channel": "card",
        "fees": 24188,
        "paid_at": "2026-10-18T10:00:00+00:00",
        "metadata": {},
    }
    body.update(data)
    return {"event": event, "data": body}


def post_webhook(client, payload, secret=SECRET_KEY, header="X-Signature", signature=None):
    """POST a webhook body signed with the real HMAC helper."""
    raw = json.dumps(payload).encode("utf-8")
    if signature is None:
        signature = compute_signature(secret, raw)
    return client.post(
        "/webhooks/payments",
        data=raw,
        content_type="application/json",
        headers={header: signature},
    )
