"""Items blueprint — /api/items/* (product and service catalog).

Route Map:
  GET    /api/items         — List (page, limit, search, type)
  POST   /api/items         — Create (plan limit: items)
  GET    /api/items/<id>    — Detail
  PATCH  /api/items/<id>    — Update
  DELETE /api/items/<id>    — Delete (refused while on an invoice)
"""

from flask import Blueprint, g, jsonify, request

from invoicely.blueprints.common import json_body, paginate
from invoicely.decorators import enforce_limit, tenant_required
from invoicely.errors import Conflict, NotFound, ValidationError
from invoicely.extensions import db
from invoicely.models.customer import Item
from invoicely.models.invoice import InvoiceItem
from invoicely.utils import clean_text, to_decimal

items_bp = Blueprint("items", __name__, url_prefix="/api/items")

FIELDS = ["name", "description", "unit", "taxable", "category"]


def _get_item(item_id):
    item = Item.query.filter_by(id=item_id, tenant_id=g.tenant_id).first()
    if item is None:
        raise NotFound("Item not found.")
    return item


def _apply(item, data):
    for field in FIELDS:
        if field in data:
            setattr(item, field, clean_text(data[field]))

    if "type" in data:
        if data["type"] not in Item.TYPES:
            raise ValidationError(f"type must be one of {Item.TYPES}.")
        item.type = data["type"]

    if "price" in data:
        try:
            price = to_decimal(data["price"], "price")
        except ValueError as e:
            raise ValidationError(str(e))
        if price < 0:
            raise ValidationError("price must not be negative.")
        item.price = price

    if "sku" in data:
        sku = (data["sku"] or "").strip() or None
        if sku:
            clash = Item.query.filter(
                Item.tenant_id == g.tenant_id,
                Item.sku == sku,
                Item.id != item.id,
            ).first()
            if clash:
                raise Conflict(f"An item with SKU {sku} already exists.")
        item.sku = sku


@items_bp.route("")
@tenant_required
def list_items():
    query = Item.query.filter_by(tenant_id=g.tenant_id)
    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            db.or_(Item.name.ilike(pattern), Item.sku.ilike(pattern))
        )
    item_type = request.args.get("type")
    if item_type:
        query = query.filter(Item.type == item_type)
    query = query.order_by(Item.created_at.desc())
    return jsonify(paginate(query, Item.to_dict))


@items_bp.route("", methods=["POST"])
@tenant_required
@enforce_limit("items")
def create_item():
    data = json_body()
    if not (data.get("name") or "").strip():
        raise ValidationError("Item name is required.")
    if data.get("price") is None:
        raise ValidationError("price is required.")

    item = Item(tenant_id=g.tenant_id, type="PRODUCT", taxable=True)
    _apply(item, data)
    db.session.add(item)
    db.session.commit()
    return jsonify({"item": item.to_dict()}), 201


@items_bp.route("/<item_id>")
@tenant_required
def get_item(item_id):
    return jsonify({"item": _get_item(item_id).to_dict()})


@items_bp.route("/<item_id>", methods=["PATCH", "PUT"])
@tenant_required
def update_item(item_id):
    item = _get_item(item_id)
    data = json_body()
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("Item name is required.")
    _apply(item, data)
    db.session.commit()
    return jsonify({"item": item.to_dict()})


@items_bp.route("/<item_id>", methods=["DELETE"])
@tenant_required
def delete_item(item_id):
    item = _get_item(item_id)
    if InvoiceItem.query.filter_by(item_id=item.id).first() is not None:
        raise Conflict("Cannot delete an item that is used on invoices.")
    db.session.delete(item)
    db.session.commit()
    return jsonify({"success": True})
