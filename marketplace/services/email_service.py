import logging
import smtplib
from email.message import EmailMessage
from urllib.parse import urlencode

from marketplace.config import settings

logger = logging.getLogger(__name__)


def verification_link(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/{settings.EMAIL_VERIFY_PATH.lstrip('/')}?{urlencode({'token': token})}"


def _verification_message(to_email: str, name: str | None, link: str) -> EmailMessage:
    greeting = name or "there"
    message = EmailMessage()
    message["Subject"] = "Verify your Craft Marketplace account"
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to_email
    message.set_content(
        f"Hi {greeting},\n\n"
        "Confirm your email to start buying and selling crafts:\n"
        f"{link}\n\n"
        f"The link is valid for {settings.EMAIL_VERIFY_TOKEN_EXPIRE_MINUTES} minutes."
    )
    message.add_alternative(
        f"<p>Hi {greeting},</p>"
        f"<p><a href=\"{link}\">Confirm your email</a> to start buying and selling crafts.</p>",
        subtype="html",
    )
    return message


def send_verify_email(to_email: str, name: str | None, token: str) -> None:
    """Send the account verification link. Raises when SMTP is not configured or delivery fails."""
    if not settings.SMTP_HOST or not settings.SMTP_FROM_EMAIL:
        raise RuntimeError("SMTP is not configured (SMTP_HOST and SMTP_FROM_EMAIL are required).")

    message = _verification_message(to_email, name, verification_link(token))
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USE_TLS:
            smtp.starttls()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        smtp.send_message(message)
    logger.info("Verification email sent")
