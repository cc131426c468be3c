import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from authkit.core.config import settings

logger = logging.getLogger(__name__)


class EmailNotConfiguredError(ValueError):
    """Raised when an email must be sent but SMTP settings are missing."""


async def send_email(to: str, subject: str, html: str, text: str | None = None) -> None:
    """
    Send an email over SMTP.

    Args:
        to: Recipient address
        subject: Subject line
        html: HTML body
        text: Optional plain-text alternative

    Raises:
        EmailNotConfiguredError: If SMTP settings are incomplete.
    """
    if not all([
        settings.smtp_host,
        settings.smtp_port,
        settings.smtp_user,
        settings.smtp_password,
        settings.smtp_from_email,
    ]):
        logger.warning("SMTP not configured - cannot send %r", subject)
        raise EmailNotConfiguredError(
            "SMTP is not configured. Please configure SMTP settings in .env file."
        )

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.smtp_from_email
    message["To"] = to

    if text:
        message.attach(MIMEText(text, "plain"))
    message.attach(MIMEText(html, "html"))

    send_kwargs = {
        "hostname": settings.smtp_host,
        "port": settings.smtp_port,
        "username": settings.smtp_user,
        "password": settings.smtp_password,
    }

    # Port 465 uses direct TLS, everything else STARTTLS
    if settings.smtp_use_tls:
        if settings.smtp_port == 465:
            send_kwargs["use_tls"] = True
        else:
            send_kwargs["start_tls"] = True

    await aiosmtplib.send(message, **send_kwargs)
    logger.info("Sent %r email", subject)
