"""
Transactional email over SMTP.

Templates live under templates/emails/. Messages are rendered in the
request thread and sent from a daemon thread so a slow SMTP server never
holds up a webhook or an API response.

Usage:
    from invoicely.services.email_service import send_email

    send_email(
        to="customer@example.com",
        subject="Payment Confirmation - INV-0001",
        template="emails/payment_confirmation.html",
        context={"customer_name": "Ada"},
    )
"""

import logging
import re
import smtplib
import threading
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template

logger = logging.getLogger(__name__)


def _send_smtp(app, msg):
    """Deliver ``msg`` via SMTP. Runs in a background thread."""
    with app.app_context():
        host = app.config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
        port = app.config.get("MAIL_SMTP_PORT", 587)
        username = app.config.get("MAIL_USERNAME")
        password = app.config.get("MAIL_PASSWORD")

        if not username or not password:
            logger.warning("Email not sent: MAIL_USERNAME or MAIL_PASSWORD not configured.")
            return

        try:
            with smtplib.SMTP(host, port, timeout=30) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(username, password)
                server.send_message(msg)
            logger.info(f"Email sent to {msg['To']}: {msg['Subject']}")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {msg['To']}: {e}")


def build_message(app, to, subject, html_body, reply_to=None):
    from_name = app.config.get("MAIL_FROM_NAME", "Invoicely")
    from_email = app.config.get("MAIL_FROM_ADDRESS") or app.config.get("MAIL_USERNAME") or ""

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to if isinstance(to, str) else ", ".join(to)
    if reply_to:
        msg["Reply-To"] = reply_to

    # plain-text part first, clients prefer the last alternative
    text_body = re.sub(r"<[^>]+>", "", html_body)
    msg.attach(MIMEText(text_body, "plain"))
    msg.attach(MIMEText(html_body, "html"))
    return msg


def send_email(to, subject, template, context=None, reply_to=None):
    """
    Render ``template`` and queue the email for background delivery.

    Args:
        to:        Recipient email address (str or list).
        subject:   Email subject line.
        template:  Path to Jinja2 HTML template (relative to templates/).
        context:   Dict of variables to pass to the template.
        reply_to:  Optional reply-to address.
    """
    app = current_app._get_current_object()
    html_body = render_template(template, **(context or {}))
    msg = build_message(app, to, subject, html_body, reply_to=reply_to)

    thread = threading.Thread(target=_send_smtp, args=(app, msg))
    thread.daemon = True
    thread.start()
