import smtplib
from email.message import EmailMessage

from ..config import settings
from ..logging import structlog


def send_email(to: str, subject: str, body: str) -> bool:
    """Send a plain-text mail. Without SMTP settings the message is only logged."""
    if not (settings.enable_email and settings.email_configured):
        structlog.get_logger().info("email_not_configured", to=to, subject=subject, body=body)
        return True
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.mail_from
    msg["To"] = to
    msg.set_content(body)
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as s:
        if settings.smtp_tls:
            s.starttls()
        if settings.smtp_username and settings.smtp_password:
            s.login(settings.smtp_username, settings.smtp_password)
        s.send_message(msg)
    structlog.get_logger().info("email_sent", to=to, subject=subject)
    return True


def send_verification_email(to: str, username: str, code: str) -> bool:
    body = (
        f"Hello {username},\n\n"
        f"Your {settings.app_name} email verification code is: {code}\n"
        f"It expires in {settings.verification_code_ttl_minutes} minutes.\n"
    )
    return send_email(to, "Verify your email", body)


def send_password_reset_email(to: str, username: str, code: str) -> bool:
    body = (
        f"Hello {username},\n\n"
        f"Your password reset code is: {code}\n"
        f"It expires in {settings.password_reset_ttl_minutes} minutes. "
        "If you did not request a reset you can ignore this message.\n"
    )
    return send_email(to, "Password reset code", body)
