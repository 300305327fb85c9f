"""Payment gateway client (Paystack-compatible REST API).

Responsible for:
- Initializing hosted checkout transactions
- Verifying transactions by reference
- Verifying webhook signatures (HMAC-SHA512 of the raw body, hex)
- Converting between major and minor currency units

PaystackClient is constructed once in create_app() and stored in
app.extensions["payment_gateway"]; services receive it as a parameter so
tests can swap in a fake.

Transport failures (timeout, connection refused, 5xx) raise
GatewayUnreachable: nothing local has changed and the caller may retry.
A definite answer that the transaction did not succeed is a
GatewayReportedFailure.
"""

import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import requests

from invoicely.errors import GatewayError, GatewayReportedFailure, GatewayUnreachable
from invoicely.utils import parse_datetime

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Amount / reference helpers
# ──────────────────────────────────────────────

def to_minor_units(amount) -> int:
    """Major -> minor units (x100, half-up). 16125 -> 1612500."""
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount_minor) -> Decimal:
    """Minor -> major units (/100). 1612500 -> Decimal('16125.00')."""
    return (Decimal(int(amount_minor or 0)) / 100).quantize(Decimal("0.01"))


def generate_reference(prefix="PAY"):
    """Unique payment reference, e.g. ``INV-1718000000000-9F2C41``."""
    millis = int(time.time() * 1000)
    return f"{prefix}-{millis}-{secrets.token_hex(3).upper()}"


def format_amount(amount, currency="NGN"):
    return f"{currency} {Decimal(str(amount)):,.2f}"


def compute_signature(secret_key, raw_body):
    """Hex HMAC-SHA512 of ``raw_body`` keyed with the gateway secret."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    return hmac.new(
        secret_key.encode("utf-8"), raw_body, hashlib.sha512
    ).hexdigest()


# ──────────────────────────────────────────────
# Gateway responses
# ──────────────────────────────────────────────

@dataclass
class Checkout:
    authorization_url: str
    reference: str
    access_code: Optional[str] = None


@dataclass
class Transaction:
    """A verified (or webhook-delivered) gateway transaction."""

    reference: str
    status: str
    amount_minor_units: int = 0
    currency: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    gateway_response: Optional[str] = None
    channel: Optional[str] = None
    fees_minor_units: int = 0
    paid_at: Any = None
    authorization: Optional[dict] = None
    customer: Optional[dict] = None

    @property
    def succeeded(self):
        return self.status == "success"

    @property
    def amount(self):
        return from_minor_units(self.amount_minor_units)

    @classmethod
    def from_payload(cls, data):
        """Build from the ``data`` object of a verify response or webhook."""
        metadata = data.get("metadata") or {}
        if isinstance(metadata, str):
            # The gateway echoes metadata back as a JSON string in some
            # integrations.
            try:
                metadata = json.loads(metadata)
            except ValueError:
                metadata = {}
        paid_at = data.get("paid_at") or data.get("paidAt")
        try:
            paid_at = parse_datetime(paid_at, "paid_at")
        except ValueError:
            paid_at = None
        return cls(
            reference=data.get("reference"),
            status=data.get("status") or "",
            amount_minor_units=int(data.get("amount") or 0),
            currency=data.get("currency"),
            metadata=metadata if isinstance(metadata, dict) else {},
            gateway_response=data.get("gateway_response"),
            channel=data.get("channel"),
            fees_minor_units=int(data.get("fees") or 0),
            paid_at=paid_at,
            authorization=data.get("authorization"),
            customer=data.get("customer"),
        )

    def audit_metadata(self):
        """Gateway details kept on the Payment row."""
        return {
            "gateway_response": self.gateway_response,
            "channel": self.channel,
            "fees": float(from_minor_units(self.fees_minor_units)),
            "authorization": self.authorization,
        }


# ──────────────────────────────────────────────
# Client
# ──────────────────────────────────────────────

class PaystackClient:
    """Thin wrapper over the gateway's REST API using requests."""

    def __init__(self, secret_key, base_url="https://api.paystack.co",
                 timeout=15, session=None):
        self.secret_key = secret_key or ""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config):
        return cls(
            secret_key=config.get("PAYSTACK_SECRET_KEY"),
            base_url=config.get("PAYSTACK_BASE_URL", "https://api.paystack.co"),
            timeout=config.get("PAYSTACK_TIMEOUT", 15),
        )

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = self.session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.exceptions.Timeout:
            logger.warning(f"Gateway timeout: {method} {path}")
            raise GatewayUnreachable()
        except requests.exceptions.RequestException as e:
            logger.warning(f"Gateway unreachable: {method} {path}: {e}")
            raise GatewayUnreachable()

        if resp.status_code >= 500:
            logger.warning(f"Gateway {resp.status_code}: {method} {path}")
            raise GatewayUnreachable()

        try:
            body = resp.json()
        except ValueError:
            logger.error(f"Gateway returned non-JSON ({resp.status_code}): {method} {path}")
            raise GatewayError()

        if resp.status_code in (400, 404) or (resp.ok and body.get("status") is False):
            message = body.get("message") or "Payment was not successful"
            raise GatewayReportedFailure(message)
        if not resp.ok:
            logger.error(
                f"Gateway error {resp.status_code}: {method} {path}: {body.get('message')}"
            )
            raise GatewayError()
        return body.get("data") or {}

    def initialize_transaction(self, email, amount_minor_units, reference,
                               metadata=None, callback_url=None, currency=None):
        """Create a hosted checkout. Returns a Checkout."""
        payload = {
            "email": email,
            "amount": int(amount_minor_units),
            "reference": reference,
            "metadata": metadata or {},
        }
        if callback_url:
            payload["callback_url"] = callback_url
        if currency:
            payload["currency"] = currency

        data = self._request("POST", "/transaction/initialize", json=payload)
        logger.info(f"Checkout initialized for {reference}")
        return Checkout(
            authorization_url=data.get("authorization_url"),
            reference=data.get("reference") or reference,
            access_code=data.get("access_code"),
        )

    def verify_transaction(self, reference):
        """Ask the gateway for the state of ``reference``. Returns a Transaction."""
        data = self._request("GET", f"/transaction/verify/{reference}")
        transaction = Transaction.from_payload(data)
        if not transaction.reference:
            transaction.reference = reference
        return transaction

    def verify_webhook_signature(self, raw_body, signature):
        """Constant-time check of the webhook signature header."""
        if not signature or not self.secret_key:
            return False
        expected = compute_signature(self.secret_key, raw_body)
        return hmac.compare_digest(expected, signature.strip().lower())
