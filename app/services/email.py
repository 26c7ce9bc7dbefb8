"""
Async email sender using aiosmtplib with STARTTLS.

Job reports go through send_email(). If EMAIL_HOST is not configured the send
is skipped with a warning; delivery failures are logged, never raised.
"""
import logging
from email.mime.text import MIMEText

import aiosmtplib

from app.core.config import settings

logger = logging.getLogger(__name__)


async def send_email(subject: str, body: str) -> bool:
    if not settings.EMAIL_HOST or not settings.EMAIL_TO:
        logger.warning("email: EMAIL_HOST/EMAIL_TO not configured, skipping '%s'", subject)
        return False

    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = settings.EMAIL_TO

    try:
        await aiosmtplib.send(
            msg,
            hostname=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            username=settings.EMAIL_USERNAME or None,
            password=settings.EMAIL_PASSWORD or None,
            start_tls=True,
        )
    except Exception as exc:
        logger.exception("email: failed to send '%s': %s", subject, exc)
        return False
    logger.info("email: sent '%s' to %s", subject, settings.EMAIL_TO)
    return True
