import logging
import secrets
import smtplib
from datetime import datetime, timedelta
from email.message import EmailMessage

from config import get_settings
from models import as_utc, utcnow

logger = logging.getLogger(__name__)

OTP_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; padding: 20px; max-width: 600px; margin: auto;">
  <h2 style="color: #333;">Your OTP Code</h2>
  <p>Your OTP code is <strong>{otp}</strong>.</p>
  <p>It expires in {minutes} minutes.</p>
</div>
"""


def generate_otp() -> str:
    """Six random digits, never starting with zero."""
    return str(100000 + secrets.randbelow(900000))


def otp_expiry() -> datetime:
    return utcnow() + timedelta(minutes=get_settings().otp_ttl_minutes)


def otp_matches(expected, expires_at, submitted: str) -> bool:
    if not expected or expires_at is None or as_utc(expires_at) < utcnow():
        return False
    return secrets.compare_digest(expected.encode(), submitted.encode())


def send_otp_email(to: str, otp: str) -> bool:
    """
    Send the OTP by SMTP. Returns False instead of raising so a mail
    outage never fails the request that triggered it.
    """
    settings = get_settings()
    if not settings.smtp_configured:
        logger.warning("SMTP not configured, OTP email to %s skipped", to)
        return False

    minutes = settings.otp_ttl_minutes
    msg = EmailMessage()
    msg["Subject"] = "Your OTP Code"
    msg["From"] = f'"{settings.mail_from_name}" <{settings.smtp_email}>'
    msg["To"] = to
    msg.set_content(f"Your OTP code is {otp}. It expires in {minutes} minutes.")
    msg.add_alternative(OTP_TEMPLATE.format(otp=otp, minutes=minutes), subtype="html")

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            if settings.smtp_use_tls:
                server.starttls()
            server.login(settings.smtp_email, settings.smtp_password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send OTP email to %s", to)
        return False

    logger.info("OTP email sent to %s", to)
    return True
