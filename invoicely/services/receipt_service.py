"""Receipt issuance and manual receipt management.

Receipt numbers come from tenants.receipt_sequence, advanced with a single
UPDATE ... SET receipt_sequence = receipt_sequence + 1 inside the caller's
transaction. The row lock taken by that UPDATE serializes issuers for the
same tenant only, and (tenant_id, receipt_number) is unique as a backstop.
"""

import logging

from sqlalchemy import select, update

from invoicely.errors import NotFound, ValidationError
from invoicely.extensions import db
from invoicely.models.customer import Customer
from invoicely.models.receipt import Receipt
from invoicely.models.tenant import Tenant
from invoicely.services.audit_service import log_audit
from invoicely.utils import clean_text, parse_datetime, to_decimal, utcnow

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ["notes", "payment_method", "reference"]


def format_receipt_number(sequence):
    return f"REC-{sequence:04d}"


def next_receipt_number(tenant_id):
    """Allocate the tenant's next receipt number. Must run inside a transaction."""
    db.session.execute(
        update(Tenant)
        .where(Tenant.id == tenant_id)
        .values(receipt_sequence=Tenant.receipt_sequence + 1)
        .execution_options(synchronize_session=False)
    )
    sequence = db.session.execute(
        select(Tenant.receipt_sequence).where(Tenant.id == tenant_id)
    ).scalar_one()
    return format_receipt_number(sequence)


def issue_receipt(tenant_id, customer_id, amount, currency, payment_method,
                  reference, issue_date, notes=None, payment_id=None):
    """Create a receipt with the next number. Flushes; caller commits."""
    receipt = Receipt(
        tenant_id=tenant_id,
        customer_id=customer_id,
        payment_id=payment_id,
        receipt_number=next_receipt_number(tenant_id),
        issue_date=issue_date or utcnow(),
        amount=amount,
        currency=currency,
        payment_method=payment_method,
        reference=reference,
        notes=notes,
    )
    db.session.add(receipt)
    db.session.flush()
    logger.info(f"Issued {receipt.receipt_number} tenant={tenant_id} ref={reference}")
    return receipt


# ──────────────────────────────────────────────
# Manual receipts (cash, bank transfer)
# ──────────────────────────────────────────────

def get_receipt(tenant_id, receipt_id):
    receipt = Receipt.query.filter_by(id=receipt_id, tenant_id=tenant_id).first()
    if receipt is None:
        raise NotFound("Receipt not found.")
    return receipt


def create_manual_receipt(tenant_id, data, user_id=None):
    customer_id = data.get("customer_id")
    if not customer_id:
        raise ValidationError("customer_id is required.")
    if Customer.query.filter_by(id=customer_id, tenant_id=tenant_id).first() is None:
        raise NotFound("Customer not found.")

    try:
        amount = to_decimal(data.get("amount"), "amount")
        issue_date = parse_datetime(data.get("issue_date"), "issue_date")
    except ValueError as e:
        raise ValidationError(str(e))
    if amount <= 0:
        raise ValidationError("amount must be greater than zero.")

    tenant = db.session.get(Tenant, tenant_id)
    try:
        receipt = issue_receipt(
            tenant_id,
            customer_id,
            amount,
            data.get("currency") or tenant.currency,
            data.get("payment_method") or "Cash",
            data.get("reference"),
            issue_date,
            notes=clean_text(data.get("notes")),
        )
        log_audit(
            tenant_id,
            "RECEIPT_CREATED",
            entity_type="receipt",
            entity_id=receipt.id,
            user_id=user_id,
            metadata={
                "receipt_number": receipt.receipt_number,
                "amount": float(amount),
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return receipt


def update_receipt(receipt, data, user_id=None):
    changes = {}
    try:
        for field in EDITABLE_FIELDS:
            if field in data:
                changes[field] = clean_text(data[field])
                setattr(receipt, field, changes[field])
        if "amount" in data:
            amount = to_decimal(data["amount"], "amount")
            if amount <= 0:
                raise ValueError("amount must be greater than zero.")
            receipt.amount = amount
            changes["amount"] = float(amount)
        if "issue_date" in data:
            receipt.issue_date = parse_datetime(data["issue_date"], "issue_date") or receipt.issue_date
            changes["issue_date"] = data["issue_date"]
    except ValueError as e:
        db.session.rollback()
        raise ValidationError(str(e))

    try:
        db.session.flush()
        log_audit(
            receipt.tenant_id,
            "RECEIPT_UPDATED",
            entity_type="receipt",
            entity_id=receipt.id,
            user_id=user_id,
            metadata={"receipt_number": receipt.receipt_number, "changes": changes},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return receipt


def delete_receipt(receipt, user_id=None):
    tenant_id = receipt.tenant_id
    try:
        log_audit(
            tenant_id,
            "RECEIPT_DELETED",
            entity_type="receipt",
            entity_id=receipt.id,
            user_id=user_id,
            metadata={
                "receipt_number": receipt.receipt_number,
                "amount": float(receipt.amount),
            },
        )
        db.session.delete(receipt)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
