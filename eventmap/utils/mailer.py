"""
Transactional email over SMTP.

Each sender builds one HTML message and hands it to send_email(). When
SMTP_HOST is not configured, messages are logged and dropped so local
development works without a mail server.
"""

import logging
import os
import smtplib
from email.message import EmailMessage
from html import escape
from typing import Callable, List

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
FROM_EMAIL = os.getenv("FROM_EMAIL") or SMTP_USER or "no-reply@eventmap.local"
SMTP_TIMEOUT = 15

CODE_EXPIRY_SECONDS = 60

_WRAPPER = '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">{body}</div>'
_CODE_BOX = (
    '<div style="background-color: #f0f0f0; padding: 20px; text-align: center; font-size: 32px; '
    'font-weight: bold; letter-spacing: 5px; margin: 20px 0;">{code}</div>'
)


def send_email(to: str, subject: str, html: str) -> bool:
    """
    Send an HTML email.

    Returns:
        bool: True if handed to the SMTP server, False if SMTP is not configured.

    Raises:
        smtplib.SMTPException / OSError: If delivery fails.
    """
    if not SMTP_HOST:
        logger.warning(f"SMTP not configured; skipping email '{subject}' to {to}")
        return False

    message = EmailMessage()
    message["From"] = FROM_EMAIL
    message["To"] = to
    message["Subject"] = subject
    message.set_content("This message requires an HTML capable email client.")
    message.add_alternative(_WRAPPER.format(body=html), subtype="html")

    with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=SMTP_TIMEOUT) as smtp:
        smtp.starttls()
        if SMTP_USER and SMTP_PASS:
            smtp.login(SMTP_USER, SMTP_PASS)
        smtp.send_message(message)

    logger.info(f"Email '{subject}' sent to {to}")
    return True


def send_quietly(sender: Callable[..., bool], *args) -> bool:
    """
    Call an email sender, logging instead of raising on delivery failure.
    Used for notification fan-out where one bad address must not fail a request.
    """
    try:
        return sender(*args)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Email delivery failed ({sender.__name__}): {e}")
        return False


def _code_email(title: str, intro: str, code: str) -> str:
    return (
        f'<h2 style="color: #2d5016;">EventMap - {title}</h2>'
        f"<p>{intro}</p>"
        + _CODE_BOX.format(code=escape(code))
        + f"<p>This code will expire in {CODE_EXPIRY_SECONDS} seconds.</p>"
        '<p style="color: #666; font-size: 12px;">If you didn\'t request this code, please ignore this email.</p>'
    )


def send_verification_code(email: str, code: str) -> bool:
    html = _code_email("Email Verification", "Your verification code is:", code)
    return send_email(email, "EventMap - Email Verification Code", html)


def send_password_reset_code(email: str, code: str) -> bool:
    html = _code_email("Password Reset", "Your password reset code is:", code)
    return send_email(email, "EventMap - Password Reset Code", html)


def send_event_changed(email: str, event_name: str, changes: List[str]) -> bool:
    items = "".join(f"<li>{escape(change)}</li>" for change in changes)
    html = (
        '<h2 style="color: #2d5016;">Event Updated</h2>'
        f"<p>The event <strong>{escape(event_name)}</strong> has been updated:</p>"
        f"<ul>{items}</ul>"
        "<p>Please check the event details for more information.</p>"
    )
    return send_email(email, "EventMap - Event Updated", html)


def send_event_cancelled(email: str, event_name: str) -> bool:
    html = (
        '<h2 style="color: #d32f2f;">Event Cancelled</h2>'
        f"<p>The event <strong>{escape(event_name)}</strong> has been cancelled.</p>"
        "<p>We apologize for any inconvenience.</p>"
    )
    return send_email(email, "EventMap - Event Cancelled", html)


def send_event_reminder(email: str, event_name: str, event_date: str, event_time: str, event_location: str) -> bool:
    html = (
        '<h2 style="color: #2d5016;">Event Reminder</h2>'
        f"<p>This is a reminder that the event <strong>{escape(event_name)}</strong> is happening tomorrow!</p>"
        '<div style="background-color: #f0f0f0; padding: 15px; margin: 20px 0;">'
        f"<p><strong>Date:</strong> {escape(event_date)}</p>"
        f"<p><strong>Time:</strong> {escape(event_time)}</p>"
        f"<p><strong>Location:</strong> {escape(event_location)}</p>"
        "</div>"
        "<p>We hope to see you there!</p>"
    )
    return send_email(email, "EventMap - Event Reminder", html)


def send_user_interested(email: str, event_name: str, user_name: str) -> bool:
    html = (
        '<h2 style="color: #2d5016;">New Interest in Your Event</h2>'
        f"<p><strong>{escape(user_name)}</strong> has shown interest in your event "
        f"<strong>{escape(event_name)}</strong>.</p>"
        "<p>Check your dashboard to see all interested users.</p>"
    )
    return send_email(email, "EventMap - Someone Interested in Your Event", html)


def send_permission_request(email: str, user_name: str, requested_role: str) -> bool:
    html = (
        '<h2 style="color: #2d5016;">Permission Request</h2>'
        f"<p><strong>{escape(user_name)}</strong> has requested to change their role to "
        f"<strong>{escape(requested_role)}</strong>.</p>"
        "<p>Please review and approve/reject this request in the admin panel.</p>"
    )
    return send_email(email, "EventMap - Permission Request", html)
