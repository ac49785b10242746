# Overview: Fire-and-forget invoice emails over SMTP.

from __future__ import annotations

import smtplib
import threading
from email.message import EmailMessage

from flask import Flask, current_app

from ..extensions import db
from ..models import Invoice
from . import audit_service


def email_enabled(app: Flask) -> bool:
    return bool(app.config.get("SMTP_HOST")) and not app.config.get("TESTING", False)


def render_invoice_email(invoice: Invoice) -> EmailMessage:
    customer = invoice.customer
    lines = [
        f"Dear {customer.name},",
        "",
        f"Thank you for your purchase. Invoice {invoice.invoice_number}:",
        "",
    ]
    for item in invoice.items:
        name = item.product.name if item.product else f"Product {item.product_id}"
        lines.append(f"  {name} x{item.quantity}  ${item.line_total_cents / 100:,.2f}")
    lines.extend([
        "",
        f"Total:       ${invoice.total_cents / 100:,.2f} ({invoice.total_local_afn_cents / 100:,.2f} AFN)",
        f"Paid:        ${invoice.paid_cents / 100:,.2f}",
        f"Outstanding: ${invoice.outstanding_cents / 100:,.2f}",
    ])

    msg = EmailMessage()
    msg["Subject"] = f"Invoice {invoice.invoice_number}"
    msg["To"] = customer.email
    msg["From"] = current_app.config.get("MAIL_FROM")
    msg.set_content("\n".join(lines))
    return msg


def _deliver(app: Flask, invoice_id: int) -> None:
    with app.app_context():
        try:
            invoice = db.session.get(Invoice, invoice_id)
            if invoice is None or not invoice.customer or not invoice.customer.email:
                return
            msg = render_invoice_email(invoice)
            with smtplib.SMTP(app.config["SMTP_HOST"], app.config.get("SMTP_PORT", 587), timeout=30) as smtp:
                if app.config.get("SMTP_USE_TLS", True):
                    smtp.starttls()
                if app.config.get("SMTP_USER"):
                    smtp.login(app.config["SMTP_USER"], app.config.get("SMTP_PASSWORD") or "")
                smtp.send_message(msg)
            app.logger.info("Sent invoice email for invoice %s", invoice_id)
        except Exception:
            app.logger.warning("Failed to send invoice email for invoice %s", invoice_id, exc_info=True)
            audit_service.log_action(
                user_id=None,
                action="EMAIL_FAILED",
                entity="invoice",
                entity_id=invoice_id,
            )
        finally:
            db.session.remove()


def send_invoice_email_async(invoice: Invoice) -> bool:
    """
    Queue the invoice email on a daemon thread. Returns False when skipped
    (no customer email or SMTP not configured). Never raises into the caller.
    """
    app = current_app._get_current_object()
    if not email_enabled(app):
        return False
    if not invoice.customer or not invoice.customer.email:
        return False

    thread = threading.Thread(target=_deliver, args=(app, invoice.id), daemon=True)
    thread.start()
    return True
