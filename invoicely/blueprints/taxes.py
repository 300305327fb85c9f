"""Taxes blueprint — /api/taxes/*

Route Map:
  GET    /api/taxes         — List (default first, then oldest)
  POST   /api/taxes         — Create
  GET    /api/taxes/<id>    — Detail
  PATCH  /api/taxes/<id>    — Update
  DELETE /api/taxes/<id>    — Delete (invoices keep their tax amount and rate)
"""

import logging

from flask import Blueprint, g, jsonify
from flask_login import current_user

from invoicely.blueprints.common import json_body
from invoicely.decorators import tenant_required
from invoicely.errors import NotFound, ValidationError
from invoicely.extensions import db
from invoicely.models.invoice import Invoice
from invoicely.models.tax import Tax
from invoicely.services.audit_service import log_audit
from invoicely.utils import clean_text, to_decimal

logger = logging.getLogger(__name__)

taxes_bp = Blueprint("taxes", __name__, url_prefix="/api/taxes")


def _get_tax(tax_id):
    tax = Tax.query.filter_by(id=tax_id, tenant_id=g.tenant_id).first()
    if tax is None:
        raise NotFound("Tax not found.")
    return tax


def _apply(tax, data):
    if "name" in data or tax.name is None:
        name = clean_text(data.get("name"))
        if not isinstance(name, str) or len(name) < 2:
            raise ValidationError("Name must be at least 2 characters.")
        tax.name = name

    if "rate" in data or tax.rate is None:
        try:
            rate = to_decimal(data.get("rate"), "rate")
        except ValueError as e:
            raise ValidationError(str(e))
        if rate < 0 or rate > 100:
            raise ValidationError("rate must be between 0 and 100.")
        tax.rate = rate

    if "description" in data:
        tax.description = clean_text(data["description"])

    if "is_default" in data:
        tax.is_default = bool(data["is_default"])


def _clear_other_defaults(tax):
    (
        Tax.query
        .filter(
            Tax.tenant_id == tax.tenant_id,
            Tax.id != tax.id,
            Tax.is_default.is_(True),
        )
        .update({"is_default": False}, synchronize_session="fetch")
    )


def _save(tax, action):
    try:
        db.session.add(tax)
        db.session.flush()
        if tax.is_default:
            _clear_other_defaults(tax)
        log_audit(
            g.tenant_id,
            action,
            entity_type="tax",
            entity_id=tax.id,
            user_id=current_user.id,
            metadata={"name": tax.name, "rate": float(tax.rate), "is_default": tax.is_default},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


@taxes_bp.route("")
@tenant_required
def list_taxes():
    taxes = (
        Tax.query
        .filter_by(tenant_id=g.tenant_id)
        .order_by(Tax.is_default.desc(), Tax.created_at.asc())
        .all()
    )
    return jsonify({"taxes": [tax.to_dict() for tax in taxes]})


@taxes_bp.route("", methods=["POST"])
@tenant_required
def create_tax():
    tax = Tax(tenant_id=g.tenant_id, is_default=False)
    _apply(tax, json_body())
    _save(tax, "TAX_CREATED")
    return jsonify({"tax": tax.to_dict()}), 201


@taxes_bp.route("/<tax_id>")
@tenant_required
def get_tax(tax_id):
    return jsonify({"tax": _get_tax(tax_id).to_dict()})


@taxes_bp.route("/<tax_id>", methods=["PATCH", "PUT"])
@tenant_required
def update_tax(tax_id):
    tax = _get_tax(tax_id)
    _apply(tax, json_body())
    _save(tax, "TAX_UPDATED")
    return jsonify({"tax": tax.to_dict()})


@taxes_bp.route("/<tax_id>", methods=["DELETE"])
@tenant_required
def delete_tax(tax_id):
    tax = _get_tax(tax_id)
    try:
        log_audit(
            g.tenant_id,
            "TAX_DELETED",
            entity_type="tax",
            entity_id=tax.id,
            user_id=current_user.id,
            metadata={"name": tax.name, "rate": float(tax.rate)},
        )
        Invoice.query.filter_by(tax_id=tax.id).update(
            {Invoice.tax_id: None}, synchronize_session="fetch"
        )
        db.session.delete(tax)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Tax {tax_id} deleted for tenant {g.tenant_id}")
    return jsonify({"success": True})
