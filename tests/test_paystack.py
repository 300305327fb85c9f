"""Tests for the gateway client and the outbound notifier.

The HTTP layer is mocked; no network access.
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from invoicely.errors import GatewayError, GatewayReportedFailure, GatewayUnreachable
from invoicely.services.notifier import Notifier, normalize_phone, whatsapp_link
from invoicely.services.paystack_service import (
    PaystackClient,
    Transaction,
    compute_signature,
    from_minor_units,
    generate_reference,
    to_minor_units,
)


def _response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 400
    resp.json.return_value = body if body is not None else {}
    return resp


def _client(response=None, error=None):
    session = MagicMock()
    if error is not None:
        session.request.side_effect = error
    else:
        session.request.return_value = response
    return PaystackClient("sk_test_fake", base_url="https://api.paystack.test/",
                          timeout=3, session=session), session


class TestAmounts:

    def test_to_minor_units(self):
        assert to_minor_units(16125) == 1612500
        assert to_minor_units("99.99") == 9999
        assert to_minor_units(Decimal("0.005")) == 1

    def test_from_minor_units(self):
        assert from_minor_units(1612500) == Decimal("16125.00")
        assert from_minor_units(None) == Decimal("0.00")

    def test_reference_format(self):
        reference = generate_reference("INV")
        prefix, millis, suffix = reference.split("-")
        assert prefix == "INV"
        assert millis.isdigit()
        assert len(suffix) == 6
        assert generate_reference("INV") != reference


class TestSignature:

    def test_valid_and_tampered(self):
        client, _ = _client()
        body = b'{"event":"charge.success"}'
        signature = compute_signature("sk_test_fake", body)
        assert len(signature) == 128
        assert client.verify_webhook_signature(body, signature) is True
        assert client.verify_webhook_signature(body, signature.upper()) is True
        assert client.verify_webhook_signature(body + b" ", signature) is False
        assert client.verify_webhook_signature(body, "") is False

    def test_no_secret_rejects_everything(self):
        client = PaystackClient("", session=MagicMock())
        assert client.verify_webhook_signature(b"{}", compute_signature("", b"{}")) is False


class TestRequests:

    def test_initialize_payload(self):
        client, session = _client(_response(200, {
            "status": True,
            "data": {"authorization_url": "https://checkout.test/x", "access_code": "ac",
                     "reference": "INV-1"},
        }))
        checkout = client.initialize_transaction(
            "ada@customer.test", 1612500, "INV-1",
            metadata={"invoiceId": "abc"}, callback_url="http://cb", currency="NGN",
        )
        assert checkout.authorization_url == "https://checkout.test/x"
        assert checkout.access_code == "ac"

        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert (method, url) == ("POST", "https://api.paystack.test/transaction/initialize")
        assert kwargs["timeout"] == 3
        assert kwargs["headers"]["Authorization"] == "Bearer sk_test_fake"
        assert kwargs["json"] == {
            "email": "ada@customer.test",
            "amount": 1612500,
            "reference": "INV-1",
            "metadata": {"invoiceId": "abc"},
            "callback_url": "http://cb",
            "currency": "NGN",
        }

    def test_verify_parses_transaction(self):
        client, _ = _client(_response(200, {"status": True, "data": {
            "reference": "INV-1",
            "status": "success",
            "amount": 1612500,
            "currency": "NGN",
            "gateway_response": "Successful",
            "channel": "card",
            "fees": 24188,
            "paid_at": "2026-10-18T10:00:00.000Z",
            "metadata": '{"planId": "p1"}',
        }}))
        transaction = client.verify_transaction("INV-1")
        assert transaction.succeeded
        assert transaction.amount == Decimal("16125.00")
        assert transaction.metadata == {"planId": "p1"}
        assert transaction.paid_at.year == 2026
        assert transaction.audit_metadata()["fees"] == 241.88

    def test_timeout_is_unreachable(self):
        client, _ = _client(error=requests.exceptions.Timeout())
        with pytest.raises(GatewayUnreachable):
            client.verify_transaction("INV-1")

    def test_connection_error_is_unreachable(self):
        client, _ = _client(error=requests.exceptions.ConnectionError())
        with pytest.raises(GatewayUnreachable):
            client.verify_transaction("INV-1")

    def test_server_error_is_unreachable(self):
        client, _ = _client(_response(503))
        with pytest.raises(GatewayUnreachable):
            client.verify_transaction("INV-1")

    def test_not_found_is_reported_failure(self):
        client, _ = _client(_response(404, {"status": False, "message": "Transaction reference not found"}))
        with pytest.raises(GatewayReportedFailure) as exc:
            client.verify_transaction("INV-1")
        assert exc.value.message == "Transaction reference not found"

    def test_unexpected_status(self):
        client, _ = _client(_response(401, {"status": False, "message": "Invalid key"}))
        with pytest.raises(GatewayError):
            client.initialize_transaction("a@b.test", 100, "INV-2")

    def test_webhook_payload_defaults(self):
        transaction = Transaction.from_payload({"reference": "X", "paid_at": "garbage"})
        assert transaction.status == ""
        assert transaction.amount_minor_units == 0
        assert transaction.paid_at is None
        assert not transaction.succeeded


class TestNotifier:

    def test_normalize_phone(self):
        assert normalize_phone("0803 123 4567") == "2348031234567"
        assert normalize_phone("+234 803 123 4567") == "2348031234567"
        assert normalize_phone("") == ""

    def test_whatsapp_link(self):
        link = whatsapp_link("08031234567", "Hi there")
        assert link == "https://wa.me/2348031234567?text=Hi%20there"

    def test_sms_without_api_key(self):
        assert Notifier({}).send_sms("08031234567", "hello") is False

    def test_sms_sent(self):
        notifier = Notifier({"TERMII_API_KEY": "key", "TERMII_SENDER_ID": "Invoicely"})
        with patch("invoicely.services.notifier.requests.post") as post:
            post.return_value = _response(200, {"message_id": "m1"})
            assert notifier.send_sms("08031234567", "hello") is True
        assert post.call_args.kwargs["json"]["to"] == "2348031234567"

    def test_sms_timeout_returns_false(self):
        notifier = Notifier({"TERMII_API_KEY": "key"})
        with patch("invoicely.services.notifier.requests.post",
                   side_effect=requests.exceptions.Timeout()):
            assert notifier.send_sms("08031234567", "hello") is False

    def test_whatsapp_api_disabled(self):
        notifier = Notifier({"WHATSAPP_API_ENABLED": False})
        assert notifier.whatsapp_api_enabled is False
        assert notifier.send_whatsapp("08031234567", "hello") is False

    def test_email_renders_template(self, app):
        notifier = Notifier(app.config)
        with patch("invoicely.services.email_service.threading.Thread") as thread:
            sent = notifier.send_email(
                "ada@customer.test",
                "Receipt REC-0001",
                "emails/receipt.html",
                {"customer_name": "Ada", "receipt_number": "REC-0001", "amount": "NGN 10.00",
                 "payment_method": "Cash", "issue_date": "October 18, 2026",
                 "company_name": "Acme Ltd"},
            )
        assert sent is True
        msg = thread.call_args.kwargs["args"][1]
        assert msg["To"] == "ada@customer.test"
        html = msg.get_payload()[1].get_payload(decode=True).decode("utf-8")
        assert "REC-0001" in html

    def test_email_without_recipient(self, app):
        assert Notifier(app.config).send_email(None, "s", "emails/receipt.html") is False
