"""Invoices blueprint — /api/invoices/*

Route Map:
  GET    /api/invoices                          — List (page, limit, search, status, customer_id)
  POST   /api/invoices                          — Create (plan limit: invoices)
  GET    /api/invoices/next-number              — Suggested next invoice number
  GET    /api/invoices/<id>                     — Detail
  PATCH  /api/invoices/<id>                     — Update (refused once PAID)
  DELETE /api/invoices/<id>                     — Delete (refused once PAID)
  POST   /api/invoices/<id>/payment-link        — Hosted checkout link
  POST   /api/invoices/<id>/mark-paid           — Manual settlement + receipt
  POST   /api/invoices/<id>/send                — Deliver by email / sms / whatsapp
  GET    /api/invoices/<id>/verify-payment      — Public checkout callback
"""

import logging

from flask import Blueprint, g, jsonify, request
from flask_login import current_user

from invoicely.blueprints.common import json_body, notifier, paginate, payment_gateway
from invoicely.decorators import enforce_limit, tenant_required
from invoicely.extensions import db, limiter
from invoicely.models.invoice import Invoice
from invoicely.services import delivery_service, invoice_service, reconciliation_service
from invoicely.services.payment_service import create_invoice_payment_link

logger = logging.getLogger(__name__)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.route("")
@tenant_required
def list_invoices():
    query = Invoice.query.filter_by(tenant_id=g.tenant_id)

    search = (request.args.get("search") or "").strip()
    if search:
        query = query.filter(Invoice.invoice_number.ilike(f"%{search}%"))
    status = request.args.get("status")
    if status:
        query = query.filter(db.or_(Invoice.status == status, Invoice.payment_status == status))
    customer_id = request.args.get("customer_id")
    if customer_id:
        query = query.filter(Invoice.customer_id == customer_id)

    query = query.order_by(Invoice.created_at.desc())
    return jsonify(paginate(query, lambda inv: inv.to_dict(include_lines=False)))


@invoices_bp.route("", methods=["POST"])
@tenant_required
@enforce_limit("invoices")
def create_invoice():
    invoice = invoice_service.create_invoice(g.tenant, json_body(), user_id=current_user.id)
    return jsonify({"invoice": invoice.to_dict()}), 201


@invoices_bp.route("/next-number")
@tenant_required
def next_number():
    return jsonify({"invoice_number": invoice_service.next_invoice_number(g.tenant_id)})


@invoices_bp.route("/<invoice_id>")
@tenant_required
def get_invoice(invoice_id):
    invoice = invoice_service.get_invoice(g.tenant_id, invoice_id)
    return jsonify({"invoice": invoice.to_dict()})


@invoices_bp.route("/<invoice_id>", methods=["PATCH", "PUT"])
@tenant_required
def update_invoice(invoice_id):
    invoice = invoice_service.get_invoice(g.tenant_id, invoice_id)
    invoice = invoice_service.update_invoice(invoice, json_body(), user_id=current_user.id)
    return jsonify({"invoice": invoice.to_dict()})


@invoices_bp.route("/<invoice_id>", methods=["DELETE"])
@tenant_required
def delete_invoice(invoice_id):
    invoice = invoice_service.get_invoice(g.tenant_id, invoice_id)
    invoice_service.delete_invoice(invoice, user_id=current_user.id)
    return jsonify({"success": True})


@invoices_bp.route("/<invoice_id>/payment-link", methods=["POST"])
@tenant_required
@limiter.limit("20 per minute")
def payment_link(invoice_id):
    invoice = invoice_service.get_invoice(g.tenant_id, invoice_id)
    checkout, payment = create_invoice_payment_link(
        invoice, payment_gateway(), user_id=current_user.id
    )
    return jsonify({
        "success": True,
        "payment_link": checkout.authorization_url,
        "reference": checkout.reference,
        "access_code": checkout.access_code,
    })


@invoices_bp.route("/<invoice_id>/mark-paid", methods=["POST"])
@tenant_required
def mark_paid(invoice_id):
    invoice = invoice_service.get_invoice(g.tenant_id, invoice_id)
    receipt = invoice_service.mark_invoice_paid(invoice, json_body(), user_id=current_user.id)
    return jsonify({"invoice": invoice.to_dict(), "receipt": receipt.to_dict()})


@invoices_bp.route("/<invoice_id>/send", methods=["POST"])
@tenant_required
@limiter.limit("30 per minute")
def send_invoice(invoice_id):
    invoice = invoice_service.get_invoice(g.tenant_id, invoice_id)
    data = request.get_json(silent=True) or {}
    body = delivery_service.send_invoice(
        invoice, data.get("channel", "email"), notifier(), user_id=current_user.id
    )
    return jsonify(body)


@invoices_bp.route("/<invoice_id>/verify-payment")
@limiter.limit("30 per minute")
def verify_payment(invoice_id):
    """Public: the customer lands here from the hosted checkout."""
    invoice, payment = reconciliation_service.verify_invoice_payment(
        invoice_id,
        request.args.get("reference"),
        payment_gateway(),
        notifier(),
    )
    return jsonify({
        "success": True,
        "message": "Payment verified successfully",
        "invoice": invoice.to_dict(),
        "payment": payment.to_dict(),
    })
