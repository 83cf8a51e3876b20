"""
Confirmation notice sent to the requester after a successful submission.
Runs after the response, never affects it.
"""

import logging
import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr

from companion.config import Settings

logger = logging.getLogger(__name__)

FROM_NAME = "Dignity Dialogue"


def send_confirmation(settings: Settings, requester_contact: str, request_id: str) -> None:
    """Send the confirmation e-mail. Log-only when SMTP is not configured."""
    body = (
        "Thank you for your submission. Your request has been received and "
        f"will be processed soon.\n\nRequest ID: {request_id}\n"
    )

    if not settings.SMTP_HOST or "@" not in requester_contact:
        logger.info(
            "Confirmation not e-mailed",
            extra={"intake_request_id": request_id, "smtp_configured": bool(settings.SMTP_HOST)},
        )
        return

    msg = MIMEText(body, "plain")
    msg["Subject"] = "Dignity Dialogue - Request Received"
    msg["From"] = formataddr((FROM_NAME, settings.NOTIFY_FROM_EMAIL))
    msg["To"] = requester_contact

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=15) as server:
        server.starttls()
        if settings.SMTP_USER and settings.SMTP_PASS:
            server.login(settings.SMTP_USER, settings.SMTP_PASS)
        server.sendmail(settings.NOTIFY_FROM_EMAIL, [requester_contact], msg.as_string())

    logger.info("Confirmation e-mailed", extra={"intake_request_id": request_id})


def notify_submission_received(settings: Settings, requester_contact: str, request_id: str) -> None:
    """Background task wrapper: every failure is logged and dropped."""
    try:
        send_confirmation(settings, requester_contact, request_id)
    except Exception as e:
        logger.error(
            f"Confirmation notification failed: {e}",
            extra={"intake_request_id": request_id},
        )
