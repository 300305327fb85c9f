"""Outbound delivery to customers: email, SMS (Termii), WhatsApp.

Notifier is constructed in create_app() and stored in
app.extensions["notifier"]. Every send_* method returns True/False and
never raises; a failed notification is logged and the calling flow goes
on. Payment state never depends on delivery.
"""

import logging
import re
from urllib.parse import quote

import requests

from invoicely.services import email_service

logger = logging.getLogger(__name__)


def normalize_phone(phone, country_code="234"):
    """Digits only, with the country code prefixed (0803... -> 234803...)."""
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        return ""
    if digits.startswith(country_code):
        return digits
    return f"{country_code}{digits.lstrip('0')}"


def whatsapp_link(phone, message, country_code="234"):
    """wa.me click-to-chat link with the message prefilled."""
    return f"https://wa.me/{normalize_phone(phone, country_code)}?text={quote(message)}"


class Notifier:

    def __init__(self, config, timeout=15):
        self.config = config
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(config)

    @property
    def whatsapp_api_enabled(self):
        return bool(
            self.config.get("WHATSAPP_API_ENABLED")
            and self.config.get("WHATSAPP_PHONE_NUMBER_ID")
            and self.config.get("WHATSAPP_ACCESS_TOKEN")
        )

    @property
    def country_code(self):
        return self.config.get("WHATSAPP_DEFAULT_COUNTRY_CODE", "234")

    def send_email(self, to, subject, template, context=None):
        if not to:
            return False
        try:
            email_service.send_email(to, subject, template, context)
        except Exception as e:
            # Template or MIME errors must not break payment flows
            logger.error(f"Email to {to} not queued: {e}", exc_info=True)
            return False
        return True

    def send_sms(self, to, message):
        api_key = self.config.get("TERMII_API_KEY")
        if not api_key:
            logger.warning("SMS not sent: TERMII_API_KEY not configured.")
            return False
        phone = normalize_phone(to, self.country_code)
        if not phone:
            return False

        base = self.config.get("TERMII_API_BASE", "https://api.ng.termii.com/api")
        try:
            resp = requests.post(
                f"{base}/sms/send",
                json={
                    "to": phone,
                    "from": self.config.get("TERMII_SENDER_ID"),
                    "sms": message,
                    "type": "plain",
                    "channel": "generic",
                    "api_key": api_key,
                },
                timeout=self.timeout,
            )
            ok = resp.ok and bool(resp.json().get("message_id"))
        except requests.exceptions.Timeout:
            logger.warning(f"SMS timeout sending to {phone}")
            return False
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"SMS to {phone} failed: {e}")
            return False

        if ok:
            logger.info(f"SMS sent to {phone}")
        else:
            logger.error(f"SMS to {phone} rejected ({resp.status_code})")
        return ok

    def send_whatsapp(self, to, message):
        """Send a text message through the WhatsApp Cloud API."""
        if not self.whatsapp_api_enabled:
            logger.warning("WhatsApp not sent: Cloud API not configured.")
            return False
        phone = normalize_phone(to, self.country_code)
        if not phone:
            return False

        version = self.config.get("WHATSAPP_API_VERSION", "v18.0")
        phone_number_id = self.config["WHATSAPP_PHONE_NUMBER_ID"]
        try:
            resp = requests.post(
                f"https://graph.facebook.com/{version}/{phone_number_id}/messages",
                headers={
                    "Authorization": f"Bearer {self.config['WHATSAPP_ACCESS_TOKEN']}",
                },
                json={
                    "messaging_product": "whatsapp",
                    "recipient_type": "individual",
                    "to": phone,
                    "type": "text",
                    "text": {"preview_url": True, "body": message},
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"WhatsApp to {phone} failed: {e}")
            return False

        if not resp.ok:
            logger.error(f"WhatsApp to {phone} rejected ({resp.status_code})")
            return False
        logger.info(f"WhatsApp message sent to {phone}")
        return True

    def whatsapp_link(self, to, message):
        return whatsapp_link(to, message, self.country_code)
