"""Payment reconciliation — gateway payment -> invoice / subscription / receipt.

Two triggers reach the same procedure:
- the signed webhook (push), via handle_webhook_event()
- the verify endpoints (pull), via verify_invoice_payment(),
  verify_upgrade_payment() and verify_reference()

apply_successful_payment() is the only code path that moves a Payment to
success. It locks the Payment row, returns ALREADY_RECONCILED if another
trigger got there first, and otherwise flips the status with a
compare-and-set UPDATE before running the purpose-specific side effects.
Everything happens in one transaction, so a crash leaves either nothing
or the whole group (payment, invoice, receipt, audit rows) behind.

Confirmation emails go out after commit, and only from the call that
applied the transition.
"""

import logging

from sqlalchemy import update

from invoicely.errors import (
    GatewayReportedFailure,
    NotFound,
    PaymentNotSuccessful,
    PaymentRecordNotFound,
    Result,
    ValidationError,
)
from invoicely.extensions import db
from invoicely.models.customer import Customer
from invoicely.models.invoice import Invoice
from invoicely.models.payment import (
    AdhocPurpose,
    InvoicePurpose,
    Payment,
    UpgradePurpose,
)
from invoicely.models.plan import Plan
from invoicely.models.subscription import Subscription
from invoicely.models.tenant import Tenant
from invoicely.services.audit_service import log_audit
from invoicely.services.paystack_service import (
    Transaction,
    format_amount,
    from_minor_units,
)
from invoicely.services.receipt_service import issue_receipt
from invoicely.services.subscription_service import confirm_upgrade
from invoicely.utils import utcnow

logger = logging.getLogger(__name__)

APPLIED = "applied"
ALREADY_RECONCILED = "already_reconciled"
ALREADY_FAILED = "already_failed"
NOT_FOUND = "not_found"
IGNORED = "ignored"

GATEWAY_METHOD = "Paystack"


def _lock_payment(reference):
    return (
        Payment.query
        .filter_by(reference=reference)
        .with_for_update()
        .first()
    )


def _record_unlinked(payment, reason):
    """Money was taken but the linked record is gone. The payment still stands."""
    logger.error(f"Payment {payment.reference}: {reason}")
    log_audit(
        payment.tenant_id,
        "PAYMENT_RECEIVED",
        entity_type="payment",
        entity_id=payment.id,
        metadata={"reference": payment.reference, "unlinked": True, "reason": reason},
    )
    return {}, None


def _received_amount(payment, transaction):
    """Amount actually paid: the gateway's figure when it reports one."""
    if transaction is not None and transaction.amount_minor_units:
        received = from_minor_units(transaction.amount_minor_units)
        if received != payment.amount:
            logger.warning(
                f"Amount mismatch on {payment.reference}: expected "
                f"{payment.amount}, gateway reported {received}"
            )
        return received
    return payment.amount


# ──────────────────────────────────────────────
# Purpose handlers (run inside the transaction)
#
# Each returns the audit-relevant extras for the Result, plus an optional
# confirmation email spec {"to", "subject", "template", "context"}.
# ──────────────────────────────────────────────

def _settle_invoice(payment, target, transaction, paid_at):
    invoice = (
        Invoice.query
        .filter_by(id=target.invoice_id, tenant_id=payment.tenant_id)
        .with_for_update()
        .first()
    )
    if invoice is None:
        return _record_unlinked(payment, f"invoice {target.invoice_id} not found")

    amount = _received_amount(payment, transaction)
    if invoice.payment_status == Invoice.PAID:
        logger.warning(
            f"Invoice {invoice.invoice_number} already paid; recording "
            f"{payment.reference} as an additional payment"
        )
    invoice.payment_status = Invoice.PAID
    invoice.paid_at = paid_at
    if invoice.status == Invoice.DRAFT:
        invoice.status = Invoice.SENT

    receipt = issue_receipt(
        payment.tenant_id,
        invoice.customer_id,
        amount,
        payment.currency,
        GATEWAY_METHOD,
        payment.reference,
        paid_at,
        notes=f"Payment received for Invoice {invoice.invoice_number}",
        payment_id=payment.id,
    )
    log_audit(
        payment.tenant_id,
        "PAYMENT_RECEIVED",
        entity_type="invoice",
        entity_id=invoice.id,
        metadata={
            "invoice_number": invoice.invoice_number,
            "amount": float(amount),
            "reference": payment.reference,
            "receipt_number": receipt.receipt_number,
            "payment_method": GATEWAY_METHOD,
        },
    )

    customer = invoice.customer
    email = None
    if customer is not None and customer.email:
        email = {
            "to": customer.email,
            "subject": f"Payment Confirmation - {invoice.invoice_number}",
            "template": "emails/payment_confirmation.html",
            "context": {
                "customer_name": customer.name,
                "invoice_number": invoice.invoice_number,
                "amount": format_amount(amount, payment.currency),
                "receipt_number": receipt.receipt_number,
                "paid_at": paid_at.strftime("%B %d, %Y"),
                "company_name": invoice.tenant.company_name,
            },
        }
    return {"invoice": invoice, "receipt": receipt}, email


def _apply_upgrade(payment, target, transaction, paid_at):
    metadata = (transaction.metadata if transaction is not None else None) or {}
    plan_id = metadata.get("planId") or target.plan_id
    if db.session.get(Plan, plan_id) is None:
        return _record_unlinked(payment, f"plan {plan_id} not found")
    subscription = confirm_upgrade(
        payment.tenant_id,
        plan_id,
        reference=payment.reference,
        user_id=metadata.get("userId") or payment.user_id,
        now=paid_at,
    )
    return {"subscription": subscription}, None


def _settle_adhoc(payment, target, transaction, paid_at):
    customer = Customer.query.filter_by(
        id=target.customer_id, tenant_id=payment.tenant_id
    ).first()
    if customer is None:
        return _record_unlinked(payment, f"customer {target.customer_id} not found")
    amount = _received_amount(payment, transaction)
    description = (payment.metadata_ or {}).get("description")

    receipt = issue_receipt(
        payment.tenant_id,
        customer.id,
        amount,
        payment.currency,
        GATEWAY_METHOD,
        payment.reference,
        paid_at,
        notes=description or "Payment received",
        payment_id=payment.id,
    )
    log_audit(
        payment.tenant_id,
        "PAYMENT_RECEIVED",
        entity_type="payment",
        entity_id=payment.id,
        metadata={
            "customer_id": target.customer_id,
            "amount": float(amount),
            "reference": payment.reference,
            "receipt_number": receipt.receipt_number,
            "payment_method": GATEWAY_METHOD,
        },
    )

    email = None
    if customer.email:
        tenant = db.session.get(Tenant, payment.tenant_id)
        email = {
            "to": customer.email,
            "subject": f"Payment Confirmation - {receipt.receipt_number}",
            "template": "emails/payment_confirmation.html",
            "context": {
                "customer_name": customer.name,
                "invoice_number": None,
                "amount": format_amount(amount, payment.currency),
                "receipt_number": receipt.receipt_number,
                "paid_at": paid_at.strftime("%B %d, %Y"),
                "company_name": tenant.company_name,
            },
        }
    return {"receipt": receipt}, email


PURPOSE_HANDLERS = {
    InvoicePurpose: _settle_invoice,
    UpgradePurpose: _apply_upgrade,
    AdhocPurpose: _settle_adhoc,
}

_missing = {variant for variant, _ in Payment.PURPOSES.values()} - set(PURPOSE_HANDLERS)
if _missing:
    raise RuntimeError(f"No reconciliation handler for {sorted(v.__name__ for v in _missing)}")


# ──────────────────────────────────────────────
# The two transitions
# ──────────────────────────────────────────────

def apply_successful_payment(reference, transaction=None, notifier=None, now=None):
    """Apply a successful gateway payment exactly once.

    Returns a Result whose status is APPLIED or ALREADY_RECONCILED (value
    is the Payment), or a failure carrying PaymentRecordNotFound.
    Unexpected errors roll back and propagate.
    """
    now = now or utcnow()
    paid_at = (transaction.paid_at if transaction is not None else None) or now
    email = None

    try:
        payment = _lock_payment(reference)
        if payment is None:
            db.session.rollback()
            logger.warning(f"No payment record for reference {reference}")
            return Result.failure(
                PaymentRecordNotFound(), status=NOT_FOUND, reference=reference
            )
        if payment.status == Payment.SUCCESS:
            db.session.rollback()
            logger.info(f"Payment {reference} already reconciled")
            return Result.success(payment, status=ALREADY_RECONCILED)

        claimed = db.session.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status != Payment.SUCCESS)
            .values(
                status=Payment.SUCCESS,
                gateway_status=transaction.status if transaction else "success",
                gateway_response=transaction.gateway_response if transaction else None,
                paid_at=paid_at,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        if claimed == 0:
            db.session.rollback()
            logger.info(f"Payment {reference} claimed by a concurrent trigger")
            return Result.success(payment, status=ALREADY_RECONCILED)
        db.session.expire(
            payment, ["status", "gateway_status", "gateway_response", "paid_at"]
        )

        if transaction is not None:
            payment.metadata_ = {
                **(payment.metadata_ or {}),
                **transaction.audit_metadata(),
            }
            if transaction.channel:
                payment.payment_method = transaction.channel

        try:
            target = payment.target
        except ValueError as e:
            extras, email = _record_unlinked(payment, str(e))
        else:
            handler = PURPOSE_HANDLERS[type(target)]
            extras, email = handler(payment, target, transaction, paid_at)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Payment {reference} reconciled ({payment.purpose})")
    if email and notifier is not None:
        notifier.send_email(
            email["to"], email["subject"], email["template"], email["context"]
        )
    return Result.success(payment, status=APPLIED, **extras)


def apply_failed_payment(reference, transaction=None):
    """pending -> failed with the gateway's reason. Never downgrades a success."""
    try:
        payment = _lock_payment(reference)
        if payment is None:
            db.session.rollback()
            logger.warning(f"No payment record for failed reference {reference}")
            return Result.failure(
                PaymentRecordNotFound(), status=NOT_FOUND, reference=reference
            )
        if payment.status == Payment.SUCCESS:
            db.session.rollback()
            logger.warning(f"Ignoring failure for already successful payment {reference}")
            return Result.success(payment, status=ALREADY_RECONCILED)
        if payment.status == Payment.FAILED:
            db.session.rollback()
            return Result.success(payment, status=ALREADY_FAILED)

        reason = (transaction.gateway_response if transaction else None) or "Payment failed"
        payment.status = Payment.FAILED
        payment.gateway_status = (transaction.status if transaction else None) or "failed"
        payment.gateway_response = reason
        if transaction is not None:
            payment.metadata_ = {
                **(payment.metadata_ or {}),
                **transaction.audit_metadata(),
            }
        db.session.flush()

        log_audit(
            payment.tenant_id,
            "PAYMENT_FAILED",
            entity_type="payment",
            entity_id=payment.id,
            metadata={
                "reference": reference,
                "purpose": payment.purpose,
                "reason": reason,
                "invoice_id": payment.invoice_id,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Payment {reference} marked failed: {reason}")
    return Result.success(payment, status=APPLIED)


# ──────────────────────────────────────────────
# Push: webhook
# ──────────────────────────────────────────────

def handle_webhook_event(event, notifier=None):
    """Dispatch a verified webhook payload. Returns a status string.

    Unknown events and unknown references are acknowledged (logged, no
    change) so the gateway stops redelivering them.
    """
    event_type = event.get("event")
    data = event.get("data") or {}
    if event_type not in ("charge.success", "charge.failed"):
        logger.info(f"Unhandled webhook event: {event_type}")
        return IGNORED

    transaction = Transaction.from_payload(data)
    if not transaction.reference:
        logger.warning(f"Webhook {event_type} without a reference")
        return IGNORED

    if event_type == "charge.success":
        result = apply_successful_payment(
            transaction.reference, transaction, notifier=notifier
        )
    else:
        result = apply_failed_payment(transaction.reference, transaction)
    return result.status


# ──────────────────────────────────────────────
# Pull: verify endpoints
# ──────────────────────────────────────────────

def _verify_with_gateway(payment, gateway, notifier, failure_cls):
    """Ask the gateway, then run the matching transition. Returns the Result."""
    transaction = gateway.verify_transaction(payment.reference)
    if not transaction.succeeded:
        apply_failed_payment(payment.reference, transaction)
        raise failure_cls(transaction.gateway_response or "Payment was not successful")
    result = apply_successful_payment(payment.reference, transaction, notifier=notifier)
    result.unwrap()
    return result


def verify_invoice_payment(invoice_id, reference, gateway, notifier=None):
    """Public callback after hosted checkout. Returns (invoice, payment)."""
    if not reference:
        raise ValidationError("Payment reference is required.")

    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound("Invoice not found.")

    payment = Payment.query.filter_by(reference=reference, invoice_id=invoice.id).first()
    if payment is None:
        raise PaymentRecordNotFound()

    if invoice.is_paid or payment.is_successful:
        return invoice, payment

    _verify_with_gateway(payment, gateway, notifier, GatewayReportedFailure)
    return invoice, payment


def verify_upgrade_payment(tenant_id, reference, gateway, notifier=None):
    """Authenticated callback after an upgrade checkout. Returns the Subscription."""
    if not reference:
        raise ValidationError("Payment reference is required.")

    payment = Payment.query.filter_by(reference=reference, tenant_id=tenant_id).first()
    if payment is None:
        raise PaymentRecordNotFound()
    if payment.purpose != Payment.PURPOSE_UPGRADE:
        raise ValidationError("Invalid payment type.")

    if not payment.is_successful:
        _verify_with_gateway(payment, gateway, notifier, PaymentNotSuccessful)

    return Subscription.query.filter_by(tenant_id=tenant_id).first()


def verify_reference(reference, gateway, notifier=None):
    """Reference-only verify used by the generic callback page. Returns the Payment."""
    if not reference:
        raise ValidationError("Payment reference is required.")

    payment = Payment.query.filter_by(reference=reference).first()
    if payment is None:
        raise PaymentRecordNotFound()
    if not payment.is_successful:
        _verify_with_gateway(payment, gateway, notifier, GatewayReportedFailure)
    return payment
