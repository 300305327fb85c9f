"""Customers blueprint — /api/customers/*

Route Map:
  GET    /api/customers                    — List (page, limit, search)
  POST   /api/customers                    — Create (plan limit: customers)
  GET    /api/customers/<id>               — Detail
  PATCH  /api/customers/<id>               — Update
  DELETE /api/customers/<id>               — Delete (refused while invoiced or receipted)
  POST   /api/customers/<id>/payment-link  — Ad-hoc payment link
"""

from flask import Blueprint, g, jsonify, request
from flask_login import current_user

from invoicely.blueprints.common import json_body, paginate, payment_gateway
from invoicely.decorators import enforce_limit, tenant_required
from invoicely.errors import Conflict, NotFound, ValidationError
from invoicely.extensions import db
from invoicely.models.customer import Customer
from invoicely.models.invoice import Invoice
from invoicely.services.payment_service import create_adhoc_payment_link
from invoicely.utils import clean_text

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")

FIELDS = ["name", "email", "phone", "address", "city", "state", "country", "notes"]


def _get_customer(customer_id):
    customer = Customer.query.filter_by(id=customer_id, tenant_id=g.tenant_id).first()
    if customer is None:
        raise NotFound("Customer not found.")
    return customer


@customers_bp.route("")
@tenant_required
def list_customers():
    query = Customer.query.filter_by(tenant_id=g.tenant_id)
    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            db.or_(
                Customer.name.ilike(pattern),
                Customer.email.ilike(pattern),
                Customer.phone.ilike(pattern),
            )
        )
    query = query.order_by(Customer.created_at.desc())
    return jsonify(paginate(query, Customer.to_dict))


@customers_bp.route("", methods=["POST"])
@tenant_required
@enforce_limit("customers")
def create_customer():
    data = json_body()
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Customer name is required.")

    customer = Customer(tenant_id=g.tenant_id)
    for field in FIELDS:
        if field in data:
            setattr(customer, field, clean_text(data[field]))
    customer.name = clean_text(name)
    db.session.add(customer)
    db.session.commit()
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.route("/<customer_id>")
@tenant_required
def get_customer(customer_id):
    customer = _get_customer(customer_id)
    body = customer.to_dict()
    body["invoice_count"] = customer.invoices.count()
    return jsonify({"customer": body})


@customers_bp.route("/<customer_id>", methods=["PATCH", "PUT"])
@tenant_required
def update_customer(customer_id):
    customer = _get_customer(customer_id)
    data = json_body()
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("Customer name is required.")
    for field in FIELDS:
        if field in data:
            setattr(customer, field, clean_text(data[field]))
    db.session.commit()
    return jsonify({"customer": customer.to_dict()})


@customers_bp.route("/<customer_id>", methods=["DELETE"])
@tenant_required
def delete_customer(customer_id):
    customer = _get_customer(customer_id)
    invoice_count = Invoice.query.filter_by(customer_id=customer.id).count()
    if invoice_count:
        raise Conflict(
            "Cannot delete customer with existing invoices.",
            invoice_count=invoice_count,
        )
    receipt_count = customer.receipts.count()
    if receipt_count:
        raise Conflict(
            "Cannot delete customer with existing receipts.",
            receipt_count=receipt_count,
        )
    db.session.delete(customer)
    db.session.commit()
    return jsonify({"success": True})


@customers_bp.route("/<customer_id>/payment-link", methods=["POST"])
@tenant_required
def customer_payment_link(customer_id):
    checkout, payment = create_adhoc_payment_link(
        g.tenant, customer_id, json_body(), payment_gateway(),
        user_id=current_user.id,
    )
    return jsonify({
        "success": True,
        "payment_link": checkout.authorization_url,
        "reference": checkout.reference,
        "payment": payment.to_dict(),
    })
