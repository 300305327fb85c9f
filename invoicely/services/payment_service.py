"""Payment link initialization.

Creates the pending Payment row before handing the customer a hosted
checkout URL, so whichever trigger reports the outcome first (webhook or
redirect verify) finds a record to reconcile.

The gateway is called first; if it fails nothing is written.
"""

import logging

from flask import current_app

from invoicely.errors import Conflict, NotFound, ValidationError
from invoicely.extensions import db
from invoicely.models.customer import Customer
from invoicely.models.payment import Payment
from invoicely.services.audit_service import log_audit
from invoicely.services.paystack_service import generate_reference, to_minor_units
from invoicely.utils import to_decimal

logger = logging.getLogger(__name__)


def _record_pending(tenant_id, checkout, purpose, amount, currency,
                    metadata, user_id=None, **purpose_key):
    payment = Payment(
        tenant_id=tenant_id,
        reference=checkout.reference,
        purpose=purpose,
        user_id=user_id,
        amount=amount,
        currency=currency,
        payment_method="Paystack",
        status=Payment.PENDING,
        authorization_url=checkout.authorization_url,
        metadata_={"access_code": checkout.access_code, **metadata},
        **purpose_key,
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def create_invoice_payment_link(invoice, gateway, user_id=None):
    """Open a checkout for the invoice total. Returns (checkout, payment)."""
    if invoice.is_paid:
        raise Conflict("Invoice is already paid.")
    customer = invoice.customer
    if not customer.email:
        raise ValidationError("Customer email is required for payment processing.")

    base_url = current_app.config["APP_BASE_URL"]
    reference = generate_reference("INV")
    metadata = {
        "invoiceId": invoice.id,
        "invoiceNumber": invoice.invoice_number,
        "customerId": customer.id,
        "tenantId": invoice.tenant_id,
        "type": "invoice",
    }
    checkout = gateway.initialize_transaction(
        email=customer.email,
        amount_minor_units=to_minor_units(invoice.total),
        reference=reference,
        metadata=metadata,
        callback_url=f"{base_url}/invoices/{invoice.id}/payment/callback",
        currency=invoice.currency,
    )

    try:
        payment = _record_pending(
            invoice.tenant_id, checkout, Payment.PURPOSE_INVOICE,
            invoice.total, invoice.currency, metadata,
            user_id=user_id, invoice_id=invoice.id,
        )
        invoice.payment_link = checkout.authorization_url
        log_audit(
            invoice.tenant_id,
            "PAYMENT_LINK_GENERATED",
            entity_type="invoice",
            entity_id=invoice.id,
            user_id=user_id,
            metadata={
                "invoice_number": invoice.invoice_number,
                "amount": float(invoice.total),
                "reference": checkout.reference,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Payment link {checkout.reference} for invoice {invoice.invoice_number}")
    return checkout, payment


def create_adhoc_payment_link(tenant, customer_id, data, gateway, user_id=None):
    """Checkout for an arbitrary amount, not tied to an invoice."""
    customer = Customer.query.filter_by(id=customer_id, tenant_id=tenant.id).first()
    if customer is None:
        raise NotFound("Customer not found.")
    if not customer.email:
        raise ValidationError("Customer email is required for payment processing.")
    try:
        amount = to_decimal(data.get("amount"), "amount")
    except ValueError as e:
        raise ValidationError(str(e))
    if amount <= 0:
        raise ValidationError("amount must be greater than zero.")

    currency = data.get("currency") or tenant.currency
    description = data.get("description")
    base_url = current_app.config["APP_BASE_URL"]
    reference = generate_reference("PAY")
    metadata = {
        "customerId": customer.id,
        "tenantId": tenant.id,
        "type": "adhoc",
        "description": description,
    }
    checkout = gateway.initialize_transaction(
        email=customer.email,
        amount_minor_units=to_minor_units(amount),
        reference=reference,
        metadata=metadata,
        callback_url=f"{base_url}/payments/callback",
        currency=currency,
    )

    try:
        payment = _record_pending(
            tenant.id, checkout, Payment.PURPOSE_ADHOC, amount, currency,
            metadata, user_id=user_id, customer_id=customer.id,
        )
        log_audit(
            tenant.id,
            "PAYMENT_LINK_GENERATED",
            entity_type="customer",
            entity_id=customer.id,
            user_id=user_id,
            metadata={
                "amount": float(amount),
                "reference": checkout.reference,
                "description": description,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Ad-hoc payment link {checkout.reference} for customer {customer.id}")
    return checkout, payment
