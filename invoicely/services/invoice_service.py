"""Invoice service — line items, totals, numbering, manual settlement.

Responsible for:
- Building invoices and their lines from JSON bodies
- Keeping subtotal / tax / total consistent with the lines
- Applying a tenant tax rate (or its default tax) to the subtotal
- Refusing any change to a PAID invoice
- Suggesting the next INV-0001 style number
- Marking an invoice paid by hand (cash, bank transfer) with a receipt

Entitlement checks happen in the blueprint before create_invoice() runs.
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal

from invoicely.errors import Conflict, NotFound, ValidationError
from invoicely.extensions import db
from invoicely.models.customer import Customer, Item
from invoicely.models.invoice import Invoice, InvoiceItem
from invoicely.models.tax import Tax
from invoicely.services.audit_service import log_audit
from invoicely.services.receipt_service import issue_receipt
from invoicely.utils import clean_text, parse_datetime, to_decimal, utcnow

logger = logging.getLogger(__name__)

NUMBER_PATTERN = re.compile(r"^INV-(\d+)$")
EDITABLE_FIELDS = ["notes", "terms", "currency"]


def get_invoice(tenant_id, invoice_id):
    invoice = Invoice.query.filter_by(id=invoice_id, tenant_id=tenant_id).first()
    if invoice is None:
        raise NotFound("Invoice not found.")
    return invoice


def next_invoice_number(tenant_id):
    """Highest INV-NNNN for the tenant plus one."""
    highest = 0
    numbers = (
        db.session.query(Invoice.invoice_number)
        .filter(Invoice.tenant_id == tenant_id)
        .all()
    )
    for (number,) in numbers:
        match = NUMBER_PATTERN.match(number or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"INV-{highest + 1:04d}"


def _build_lines(tenant_id, raw_lines):
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("At least one line item is required.")

    lines = []
    for position, raw in enumerate(raw_lines):
        item = None
        if raw.get("item_id"):
            item = Item.query.filter_by(id=raw["item_id"], tenant_id=tenant_id).first()
            if item is None:
                raise NotFound("Item not found.")

        description = clean_text(raw.get("description") or (item.name if item else ""))
        if not description:
            raise ValidationError(f"Line {position + 1}: description is required.")
        try:
            quantity = to_decimal(raw.get("quantity", 1), "quantity")
            price = to_decimal(
                raw["price"] if raw.get("price") is not None else (item.price if item else None),
                "price",
            )
        except ValueError as e:
            raise ValidationError(f"Line {position + 1}: {e}")
        if quantity <= 0:
            raise ValidationError(f"Line {position + 1}: quantity must be greater than zero.")
        if price < 0:
            raise ValidationError(f"Line {position + 1}: price must not be negative.")

        lines.append(InvoiceItem(
            item_id=item.id if item else None,
            position=position,
            description=description,
            quantity=quantity,
            price=price,
            amount=(quantity * price).quantize(Decimal("0.01")),
        ))
    return lines


def _apply_totals(invoice, tax_amount=None):
    """Recompute subtotal and total. A flat tax_amount wins over the stored rate."""
    invoice.subtotal = sum((line.amount for line in invoice.lines), Decimal("0.00"))
    if tax_amount is not None:
        invoice.tax_amount = tax_amount
    elif invoice.tax_rate is not None:
        invoice.tax_amount = (invoice.subtotal * invoice.tax_rate / 100).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
    invoice.total = invoice.subtotal + (invoice.tax_amount or Decimal("0.00"))


def _parse_tax(data):
    if data.get("tax_amount") in (None, ""):
        return None
    try:
        tax = to_decimal(data["tax_amount"], "tax_amount")
    except ValueError as e:
        raise ValidationError(str(e))
    if tax < 0:
        raise ValidationError("tax_amount must not be negative.")
    return tax


def _choose_tax(invoice, data, creating=False):
    """Set tax_id / tax_rate from the body and return a flat tax_amount, if any.

    tax_id wins over tax_amount. An explicit null tax_id or a tax_amount
    drops the rate. New invoices with neither key get the tenant default.
    """
    if data.get("tax_id"):
        tax = Tax.query.filter_by(id=data["tax_id"], tenant_id=invoice.tenant_id).first()
        if tax is None:
            raise NotFound("Tax not found.")
        invoice.tax_id, invoice.tax_rate = tax.id, tax.rate
        return None

    if "tax_id" in data or "tax_amount" in data:
        invoice.tax_id, invoice.tax_rate = None, None
        return _parse_tax(data) or Decimal("0.00")

    if creating:
        default = Tax.query.filter_by(tenant_id=invoice.tenant_id, is_default=True).first()
        if default is not None:
            invoice.tax_id, invoice.tax_rate = default.id, default.rate
            return None
        return Decimal("0.00")
    return None


def _parse_dates(data):
    try:
        return (
            parse_datetime(data.get("issue_date"), "issue_date"),
            parse_datetime(data.get("due_date"), "due_date"),
        )
    except ValueError as e:
        raise ValidationError(str(e))


def create_invoice(tenant, data, user_id=None):
    """Insert an invoice with its lines. Commits. Raises AppError subclasses."""
    customer = Customer.query.filter_by(
        id=data.get("customer_id"), tenant_id=tenant.id
    ).first()
    if customer is None:
        raise NotFound("Customer not found.")

    invoice_number = (data.get("invoice_number") or "").strip() or next_invoice_number(tenant.id)
    if Invoice.query.filter_by(tenant_id=tenant.id, invoice_number=invoice_number).first():
        raise Conflict(f"Invoice number {invoice_number} already exists.")

    status = data.get("status") or Invoice.DRAFT
    if status not in (Invoice.DRAFT, Invoice.SENT):
        raise ValidationError("New invoices must be DRAFT or SENT.")

    issue_date, due_date = _parse_dates(data)
    lines = _build_lines(tenant.id, data.get("items"))

    invoice = Invoice(
        tenant_id=tenant.id,
        customer_id=customer.id,
        invoice_number=invoice_number,
        issue_date=issue_date or utcnow(),
        due_date=due_date,
        status=status,
        payment_status=Invoice.UNPAID,
        currency=data.get("currency") or tenant.currency,
        notes=clean_text(data.get("notes")),
        terms=clean_text(data.get("terms")),
    )
    invoice.lines = lines
    _apply_totals(invoice, _choose_tax(invoice, data, creating=True))

    try:
        db.session.add(invoice)
        db.session.flush()
        log_audit(
            tenant.id,
            "INVOICE_CREATED",
            entity_type="invoice",
            entity_id=invoice.id,
            user_id=user_id,
            metadata={"invoice_number": invoice_number, "total": float(invoice.total)},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return invoice


def ensure_editable(invoice):
    if invoice.is_paid:
        raise Conflict("Paid invoices cannot be modified.")


def update_invoice(invoice, data, user_id=None):
    ensure_editable(invoice)

    if "invoice_number" in data and data["invoice_number"] != invoice.invoice_number:
        number = (data["invoice_number"] or "").strip()
        if not number:
            raise ValidationError("invoice_number must not be empty.")
        clash = Invoice.query.filter(
            Invoice.tenant_id == invoice.tenant_id,
            Invoice.invoice_number == number,
            Invoice.id != invoice.id,
        ).first()
        if clash:
            raise Conflict(f"Invoice number {number} already exists.")
        invoice.invoice_number = number

    if "customer_id" in data:
        customer = Customer.query.filter_by(
            id=data["customer_id"], tenant_id=invoice.tenant_id
        ).first()
        if customer is None:
            raise NotFound("Customer not found.")
        invoice.customer_id = customer.id

    if "status" in data:
        if data["status"] not in Invoice.STATUSES:
            raise ValidationError(f"status must be one of {Invoice.STATUSES}.")
        invoice.status = data["status"]

    issue_date, due_date = _parse_dates(data)
    if issue_date:
        invoice.issue_date = issue_date
    if "due_date" in data:
        invoice.due_date = due_date

    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(invoice, field, clean_text(data[field]))

    if "items" in data:
        invoice.lines = _build_lines(invoice.tenant_id, data["items"])
    _apply_totals(invoice, _choose_tax(invoice, data))

    try:
        db.session.flush()
        log_audit(
            invoice.tenant_id,
            "INVOICE_UPDATED",
            entity_type="invoice",
            entity_id=invoice.id,
            user_id=user_id,
            metadata={"invoice_number": invoice.invoice_number, "fields": sorted(data)},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return invoice


def delete_invoice(invoice, user_id=None):
    ensure_editable(invoice)
    try:
        log_audit(
            invoice.tenant_id,
            "INVOICE_DELETED",
            entity_type="invoice",
            entity_id=invoice.id,
            user_id=user_id,
            metadata={"invoice_number": invoice.invoice_number},
        )
        db.session.delete(invoice)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def mark_invoice_paid(invoice, data, user_id=None):
    """Settle an invoice outside the gateway. Returns the issued Receipt."""
    payment_method = (data.get("payment_method") or "").strip()
    if not payment_method:
        raise ValidationError("Payment method is required.")
    try:
        paid_at = parse_datetime(data.get("paid_at"), "paid_at") or utcnow()
    except ValueError as e:
        raise ValidationError(str(e))

    try:
        locked = (
            Invoice.query
            .filter_by(id=invoice.id)
            .with_for_update()
            .populate_existing()
            .one()
        )
        if locked.is_paid:
            raise Conflict("Invoice is already marked as paid.")

        locked.payment_status = Invoice.PAID
        locked.paid_at = paid_at
        if locked.status == Invoice.DRAFT:
            locked.status = Invoice.SENT

        receipt = issue_receipt(
            locked.tenant_id,
            locked.customer_id,
            locked.total,
            locked.currency,
            payment_method,
            data.get("reference"),
            paid_at,
            notes=clean_text(data.get("notes")),
        )
        log_audit(
            locked.tenant_id,
            "INVOICE_MARKED_PAID",
            entity_type="invoice",
            entity_id=locked.id,
            user_id=user_id,
            metadata={
                "invoice_number": locked.invoice_number,
                "amount": float(locked.total),
                "payment_method": payment_method,
                "receipt_number": receipt.receipt_number,
            },
        )
        log_audit(
            locked.tenant_id,
            "RECEIPT_CREATED_AUTO",
            entity_type="receipt",
            entity_id=receipt.id,
            user_id=user_id,
            metadata={
                "receipt_number": receipt.receipt_number,
                "amount": float(receipt.amount),
                "invoice_number": locked.invoice_number,
                "customer_name": locked.customer.name,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Invoice {locked.invoice_number} marked paid ({payment_method})")
    return receipt
