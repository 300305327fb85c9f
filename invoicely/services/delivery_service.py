"""Send invoices and receipts to customers over email, SMS or WhatsApp.

SMS and WhatsApp are plan features (sms, whatsapp); email is always
available. WhatsApp goes through the Cloud API when it is configured and
otherwise returns a wa.me link for the user to open.
"""

import logging

from flask import current_app

from invoicely.errors import DeliveryFailed, ValidationError
from invoicely.extensions import db
from invoicely.models.invoice import Invoice
from invoicely.services.audit_service import log_audit
from invoicely.services.entitlement_service import require_feature
from invoicely.services.paystack_service import format_amount

logger = logging.getLogger(__name__)

INVOICE_CHANNELS = ("email", "sms", "whatsapp")
RECEIPT_CHANNELS = ("email", "whatsapp")


def _deliver(channel, notifier, tenant_id, customer, email, text):
    """Returns (sent, whatsapp_link)."""
    if channel == "email":
        if not customer.email:
            raise ValidationError("Customer has no email address.")
        return notifier.send_email(customer.email, email["subject"],
                                   email["template"], email["context"]), None

    if not customer.phone:
        raise ValidationError("Customer has no phone number.")

    if channel == "sms":
        require_feature(tenant_id, "sms")
        return notifier.send_sms(customer.phone, text), None

    require_feature(tenant_id, "whatsapp")
    if notifier.whatsapp_api_enabled:
        return notifier.send_whatsapp(customer.phone, text), None
    return True, notifier.whatsapp_link(customer.phone, text)


def send_invoice(invoice, channel, notifier, user_id=None):
    """Deliver the invoice. DRAFT invoices become SENT. Returns the response body."""
    if channel not in INVOICE_CHANNELS:
        raise ValidationError(f"channel must be one of {list(INVOICE_CHANNELS)}.")

    customer = invoice.customer
    company = invoice.tenant.company_name
    amount = format_amount(invoice.total, invoice.currency)
    view_link = invoice.payment_link or (
        f"{current_app.config['APP_BASE_URL']}/invoices/{invoice.id}"
    )
    text = (
        f"Hi {customer.name}, you have a new invoice #{invoice.invoice_number} "
        f"for {amount} from {company}. View: {view_link}"
    )
    email = {
        "subject": f"Invoice {invoice.invoice_number} from {company}",
        "template": "emails/invoice.html",
        "context": {
            "customer_name": customer.name,
            "invoice_number": invoice.invoice_number,
            "amount": amount,
            "due_date": invoice.due_date.strftime("%B %d, %Y") if invoice.due_date else None,
            "view_link": view_link,
            "company_name": company,
        },
    }

    sent, link = _deliver(channel, notifier, invoice.tenant_id, customer, email, text)
    if not sent:
        raise DeliveryFailed(f"Failed to send invoice via {channel}.")

    try:
        if invoice.status == Invoice.DRAFT:
            invoice.status = Invoice.SENT
        log_audit(
            invoice.tenant_id,
            "INVOICE_SENT",
            entity_type="invoice",
            entity_id=invoice.id,
            user_id=user_id,
            metadata={"invoice_number": invoice.invoice_number, "channel": channel},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Invoice {invoice.invoice_number} sent via {channel}")
    body = {"success": True, "channel": channel, "invoice": invoice.to_dict()}
    if link:
        body["whatsapp_link"] = link
    return body


def send_receipt(receipt, channel, notifier, user_id=None):
    if channel not in RECEIPT_CHANNELS:
        raise ValidationError(f"channel must be one of {list(RECEIPT_CHANNELS)}.")
    customer = receipt.customer

    company = receipt.tenant.company_name
    amount = format_amount(receipt.amount, receipt.currency)
    text = (
        f"Hi {customer.name}, thank you for your payment of {amount} to "
        f"{company}. Receipt #{receipt.receipt_number}."
    )
    email = {
        "subject": f"Receipt {receipt.receipt_number} from {company}",
        "template": "emails/receipt.html",
        "context": {
            "customer_name": customer.name,
            "receipt_number": receipt.receipt_number,
            "amount": amount,
            "payment_method": receipt.payment_method,
            "issue_date": receipt.issue_date.strftime("%B %d, %Y"),
            "company_name": company,
        },
    }

    sent, link = _deliver(channel, notifier, receipt.tenant_id, customer, email, text)
    if not sent:
        raise DeliveryFailed(f"Failed to send receipt via {channel}.")

    try:
        log_audit(
            receipt.tenant_id,
            "RECEIPT_SENT",
            entity_type="receipt",
            entity_id=receipt.id,
            user_id=user_id,
            metadata={"receipt_number": receipt.receipt_number, "channel": channel},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    body = {"success": True, "channel": channel}
    if link:
        body["whatsapp_link"] = link
    return body
