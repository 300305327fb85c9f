"""Payments blueprint — /api/payments/verify (public checkout callback).

Reference-only counterpart of /api/invoices/<id>/verify-payment, used by
the generic callback page for ad-hoc links. CSRF-exempt (GET only).
"""

from flask import Blueprint, jsonify, request

from invoicely.blueprints.common import notifier, payment_gateway
from invoicely.extensions import limiter
from invoicely.services import reconciliation_service

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.route("/verify")
@limiter.limit("30 per minute")
def verify_payment():
    payment = reconciliation_service.verify_reference(
        request.args.get("reference"), payment_gateway(), notifier()
    )
    return jsonify({
        "success": payment.is_successful,
        "payment": payment.to_dict(),
    })
