"""Webhooks blueprint — /webhooks/payments

Receives payment gateway events. CSRF-exempt.
The raw body is required for signature verification.
"""

import json
import logging

from flask import Blueprint, jsonify, request

from invoicely.blueprints.common import notifier, payment_gateway
from invoicely.extensions import db
from invoicely.services.reconciliation_service import handle_webhook_event

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")

SIGNATURE_HEADERS = ("X-Signature", "X-Paystack-Signature")


@webhooks_bp.route("/payments", methods=["POST"])
def payment_webhook():
    """Receive and process gateway webhook events.

    1. Get raw body (required for signature verification)
    2. Verify HMAC-SHA512 signature with the gateway secret
    3. Pass to handle_webhook_event (idempotent per payment reference)
    4. Return 200 to acknowledge receipt

    Internal errors answer 500 so the gateway redelivers; reprocessing is
    safe because reconciliation is idempotent.
    """
    payload = request.get_data()
    signature = next(
        (request.headers.get(h) for h in SIGNATURE_HEADERS if request.headers.get(h)),
        None,
    )

    if not signature:
        logger.warning("Webhook received without a signature header")
        return jsonify({"error": "Missing signature"}), 400

    # --- Verify signature ---
    if not payment_gateway().verify_webhook_signature(payload, signature):
        logger.warning("Webhook signature verification failed")
        return jsonify({"error": "Invalid signature"}), 400

    try:
        event = json.loads(payload)
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return jsonify({"error": "Invalid payload"}), 400
    if not isinstance(event, dict):
        return jsonify({"error": "Invalid payload"}), 400

    logger.info(f"Webhook received: {event.get('event')}")

    # --- Process event (idempotent) ---
    try:
        status = handle_webhook_event(event, notifier=notifier())
    except Exception as e:
        db.session.rollback()
        logger.error(f"Webhook processing failed: {e}", exc_info=True)
        return jsonify({"error": "Webhook processing failed"}), 500

    return jsonify({"received": True, "status": status}), 200
