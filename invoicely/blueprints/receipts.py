"""Receipts blueprint — /api/receipts/*

Route Map:
  GET    /api/receipts              — List (page, limit, search, customer_id)
  POST   /api/receipts              — Manual receipt (cash, transfer)
  GET    /api/receipts/<id>         — Detail
  PATCH  /api/receipts/<id>         — Update notes / method / reference / date / amount
  DELETE /api/receipts/<id>         — Delete
  POST   /api/receipts/<id>/send    — Deliver by email / whatsapp
"""

from flask import Blueprint, g, jsonify, request
from flask_login import current_user

from invoicely.blueprints.common import json_body, notifier, paginate
from invoicely.decorators import tenant_required
from invoicely.extensions import db
from invoicely.models.receipt import Receipt
from invoicely.services import delivery_service, receipt_service

receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/receipts")


@receipts_bp.route("")
@tenant_required
def list_receipts():
    query = Receipt.query.filter_by(tenant_id=g.tenant_id)
    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            db.or_(Receipt.receipt_number.ilike(pattern), Receipt.reference.ilike(pattern))
        )
    customer_id = request.args.get("customer_id")
    if customer_id:
        query = query.filter(Receipt.customer_id == customer_id)
    query = query.order_by(Receipt.created_at.desc())
    return jsonify(paginate(query, Receipt.to_dict))


@receipts_bp.route("", methods=["POST"])
@tenant_required
def create_receipt():
    receipt = receipt_service.create_manual_receipt(
        g.tenant_id, json_body(), user_id=current_user.id
    )
    return jsonify({"receipt": receipt.to_dict()}), 201


@receipts_bp.route("/<receipt_id>")
@tenant_required
def get_receipt(receipt_id):
    return jsonify({"receipt": receipt_service.get_receipt(g.tenant_id, receipt_id).to_dict()})


@receipts_bp.route("/<receipt_id>", methods=["PATCH", "PUT"])
@tenant_required
def update_receipt(receipt_id):
    receipt = receipt_service.get_receipt(g.tenant_id, receipt_id)
    receipt = receipt_service.update_receipt(receipt, json_body(), user_id=current_user.id)
    return jsonify({"receipt": receipt.to_dict()})


@receipts_bp.route("/<receipt_id>", methods=["DELETE"])
@tenant_required
def delete_receipt(receipt_id):
    receipt = receipt_service.get_receipt(g.tenant_id, receipt_id)
    receipt_service.delete_receipt(receipt, user_id=current_user.id)
    return jsonify({"success": True})


@receipts_bp.route("/<receipt_id>/send", methods=["POST"])
@tenant_required
def send_receipt(receipt_id):
    receipt = receipt_service.get_receipt(g.tenant_id, receipt_id)
    data = request.get_json(silent=True) or {}
    body = delivery_service.send_receipt(
        receipt, data.get("channel", "email"), notifier(), user_id=current_user.id
    )
    return jsonify(body)
