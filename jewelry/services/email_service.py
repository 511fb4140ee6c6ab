"""
Email notifications for quotation and order events.
Uses Flask-Mail for SMTP integration with UTF-8 support.

All senders are best-effort: they log and return False on failure and are
called after the triggering transaction has committed.
"""
import logging
from typing import Optional

from flask import current_app
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return bool(
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def _wrap_html(title: str, body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="UTF-8">
        <style>
            body {{ font-family: Georgia, serif; color: #333; }}
            .container {{ max-width: 600px; margin: auto; padding: 20px; }}
            .header {{ background: #7a5c2e; color: #fff; padding: 20px; text-align: center; }}
            .content {{ background: #fff; padding: 30px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <div class="header"><h1>{title}</h1></div>
            <div class="content">{body}</div>
        </div>
    </body>
    </html>
    """


def _send(kind: str, to_email: Optional[str], subject: str, text_body: str, html_body: str) -> bool:
    try:
        if not to_email:
            logger.info(f"[EMAIL] {kind} skipped: no recipient")
            return True

        if not _mail_enabled():
            logger.info(f"[MAIL DISABLED] {kind} email skipped for {to_email}")
            return True

        msg = Message(subject=subject, recipients=[to_email], body=text_body, html=html_body)
        mail.send(msg)
        logger.info(f"[EMAIL] {kind} email sent to {to_email}")
        return True

    except Exception as e:
        logger.exception(f"[EMAIL] Error sending {kind} email: {e}")
        return False


def send_quotation_approved(to_email: str, customer_name: str, quotation_group_id: str,
                            order_reference: str) -> bool:
    subject = f"Your quotation has been approved - order {order_reference}"
    text_body = (
        f"Hello {customer_name},\n\n"
        f"Your quotation {quotation_group_id} has been approved.\n"
        f"Order reference: {order_reference}. Production has started.\n"
    )
    html_body = _wrap_html(
        "Quotation approved",
        f"<p>Hello <strong>{customer_name}</strong>,</p>"
        f"<p>Your quotation <code>{quotation_group_id}</code> has been approved.</p>"
        f"<p>Order reference: <strong>{order_reference}</strong>. Production has started.</p>"
    )
    return _send('quotation-approved', to_email, subject, text_body, html_body)


def send_quotation_rejected(to_email: str, customer_name: str, quotation_group_id: str,
                            admin_notes: Optional[str] = None) -> bool:
    subject = "Update on your quotation request"
    reason = admin_notes or 'No further details were provided.'
    text_body = (
        f"Hello {customer_name},\n\n"
        f"We are unable to proceed with quotation {quotation_group_id}.\n"
        f"Notes: {reason}\n"
    )
    html_body = _wrap_html(
        "Quotation update",
        f"<p>Hello <strong>{customer_name}</strong>,</p>"
        f"<p>We are unable to proceed with quotation <code>{quotation_group_id}</code>.</p>"
        f"<p><em>{reason}</em></p>"
    )
    return _send('quotation-rejected', to_email, subject, text_body, html_body)


def send_quotation_confirmation_request(to_email: str, customer_name: str, quotation_group_id: str,
                                        message: Optional[str] = None) -> bool:
    subject = "Please review your updated quotation"
    message = message or 'Please review updated quotation details.'
    text_body = (
        f"Hello {customer_name},\n\n"
        f"Quotation {quotation_group_id} was updated and needs your confirmation.\n"
        f"{message}\n"
    )
    html_body = _wrap_html(
        "Confirmation needed",
        f"<p>Hello <strong>{customer_name}</strong>,</p>"
        f"<p>Quotation <code>{quotation_group_id}</code> was updated and needs your confirmation.</p>"
        f"<p>{message}</p>"
    )
    return _send('quotation-confirmation', to_email, subject, text_body, html_body)


def send_order_status_changed(to_email: str, customer_name: str, order_reference: str, status: str) -> bool:
    label = status.replace('_', ' ').title()
    subject = f"Order {order_reference}: {label}"
    text_body = f"Hello {customer_name},\n\nYour order {order_reference} is now: {label}.\n"
    html_body = _wrap_html(
        "Order update",
        f"<p>Hello <strong>{customer_name}</strong>,</p>"
        f"<p>Your order <strong>{order_reference}</strong> is now: <strong>{label}</strong>.</p>"
    )
    return _send('order-status', to_email, subject, text_body, html_body)


def send_quotation_submitted_admin(quotation_group_id: str, customer_name: str, line_count: int) -> bool:
    """Alert the shop that a new quotation request is waiting for review."""
    to_email = current_app.config.get('ADMIN_NOTIFICATION_EMAIL')
    subject = f"New quotation request from {customer_name}"
    text_body = (
        f"Customer {customer_name} submitted quotation {quotation_group_id} "
        f"with {line_count} item(s).\n"
    )
    html_body = _wrap_html(
        "New quotation request",
        f"<p><strong>{customer_name}</strong> submitted quotation <code>{quotation_group_id}</code> "
        f"with {line_count} item(s).</p>"
    )
    return _send('quotation-submitted', to_email, subject, text_body, html_body)


def send_order_paid_admin(order_reference: str, customer_name: str, total: str, currency: str) -> bool:
    """Alert the shop that a checkout payment went through and the order can be produced."""
    to_email = current_app.config.get('ADMIN_NOTIFICATION_EMAIL')
    subject = f"Payment received for order {order_reference}"
    text_body = f"{customer_name} paid {total} {currency} for order {order_reference}.\n"
    html_body = _wrap_html(
        "Payment received",
        f"<p><strong>{customer_name}</strong> paid <strong>{total} {currency}</strong> "
        f"for order <strong>{order_reference}</strong>.</p>"
    )
    return _send('order-paid', to_email, subject, text_body, html_body)
