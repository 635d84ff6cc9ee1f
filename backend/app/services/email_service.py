# backend/app/services/email_service.py
"""
Outbound email: verification and password reset codes, revenue summaries.

Sends through SMTP with STARTTLS. When no mailbox is configured the code is
written to the log instead, which is how development environments read it.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage

from app.config import settings

logger = logging.getLogger(__name__)


def _build_message(to_address: str, subject: str, body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_USER}>"
    msg["To"] = to_address
    msg.set_content(body)
    return msg


def send_email(to_address: str, subject: str, body: str) -> bool:
    """Send a plain-text email. Returns False on failure; never raises."""
    if not settings.EMAIL_USER or not settings.EMAIL_APP_PASSWORD:
        logger.info(f"Email not configured; would send '{subject}' to {to_address}:\n{body}")
        return False

    msg = _build_message(to_address, subject, body)
    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            server.starttls(context=ssl.create_default_context())
            server.login(settings.EMAIL_USER, settings.EMAIL_APP_PASSWORD)
            server.send_message(msg)
        logger.info(f"Email sent to {to_address}: {subject}")
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {to_address}: {e}", exc_info=True)
        return False


def send_verification_email(to_address: str, name: str, code: str) -> bool:
    body = (
        f"Hello {name},\n\n"
        f"Your verification code is: {code}\n\n"
        f"This code expires in {settings.VERIFICATION_CODE_TTL_MINUTES} minutes."
    )
    return send_email(to_address, "Verify your email address", body)


def send_password_reset_email(to_address: str, name: str, code: str) -> bool:
    body = (
        f"Hello {name},\n\n"
        f"Your password reset code is: {code}\n\n"
        f"This code expires in {settings.VERIFICATION_CODE_TTL_MINUTES} minutes. "
        f"If you did not request a reset you can ignore this email."
    )
    return send_email(to_address, "Password reset code", body)


def send_revenue_summary_email(
    to_address: str,
    name: str,
    recorded_by: str,
    entry: dict,
    month: dict,
) -> bool:
    """Tell an earner about a new revenue entry with their month-to-date totals."""
    lines = [
        f"Dear {name},",
        "",
        f"Your daily revenue has been updated by {recorded_by}:",
        "",
        f"Merchant: {entry['merchant_code']}",
        f"Revenue: ৳{entry['revenue']:,}",
        f"Orders: {entry['orders']}",
        f"Date: {entry['date']:%Y-%m-%d}",
    ]
    if entry.get("description"):
        lines.append(f"Notes: {entry['description']}")
    if month["target_lines"]:
        lines += ["", "Monthly target progress:", *month["target_lines"]]
    lines += [
        "",
        "Monthly summary:",
        f"Total revenue: ৳{month['total_revenue']:,}",
        f"Total orders: {month['total_orders']}",
        f"Average revenue per order: ৳{month['average_per_order']:,}",
        "",
        "Keep up the excellent work!",
    ]
    subject = f"Daily Revenue Summary - ৳{entry['revenue']:,}"
    return send_email(to_address, subject, "\n".join(lines))


def send_bulk_upload_summary_email(to_address: str, name: str, summary: dict) -> bool:
    lines = [
        f"Dear {name},",
        "",
        "Your bulk revenue upload has been processed:",
        "",
        f"Total entries: {summary['total_entries']}",
        f"Successful: {summary['processed']}",
        f"Failed: {summary['failed']}",
        f"Total revenue added: ৳{summary['total_revenue']:,}",
        f"Total orders: {summary['total_orders']}",
        f"Users affected: {summary['affected_users']}",
    ]
    if summary["errors"]:
        lines += ["", "Errors:", *(f"- {error}" for error in summary["errors"])]
    lines += ["", "Summary emails have been sent to all affected users."]
    subject = f"Bulk Revenue Upload Summary - {summary['processed']} entries processed"
    return send_email(to_address, subject, "\n".join(lines))
