"""
Async-safe email sender.

smtplib is blocking; every send runs in the loop's default executor so the
FastAPI event loop never waits on SMTP.
"""
import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from giftlist.core.config import settings

logger = logging.getLogger("giftlist.mailer")


def _build_login_message(to_email: str, login_url: str) -> MIMEMultipart:
    safe_url = html.escape(login_url, quote=True)
    text_body = (
        "Admin Login Request\n\n"
        "Click the link below to log in to the Gift List admin panel:\n"
        f"{login_url}\n\n"
        f"This link will expire in {settings.otp_expire_minutes} minutes.\n\n"
        "If you didn't request this login, please ignore this email."
    )
    html_body = f"""
    <div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">
        <h2>Admin Login Request</h2>
        <p>Click the link below to log in to the Gift List admin panel:</p>
        <p>
            <a href="{safe_url}" style="display: inline-block; padding: 12px 24px; background-color: #3b82f6; color: white; text-decoration: none; border-radius: 4px;">
                Log In to Admin Panel
            </a>
        </p>
        <p>This link will expire in {settings.otp_expire_minutes} minutes.</p>
        <p>If you didn't request this login, please ignore this email.</p>
    </div>
    """

    message = MIMEMultipart("alternative")
    message["Subject"] = "Login to Gift List Admin"
    message["From"] = settings.smtp_from_email
    message["To"] = to_email
    message.attach(MIMEText(text_body, "plain", "utf-8"))
    message.attach(MIMEText(html_body, "html", "utf-8"))
    return message


def _send_sync(message: MIMEMultipart) -> None:
    """Blocking SMTP send; must run in an executor."""
    if settings.smtp_use_tls:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            server.starttls()
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)
    else:
        with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)


async def send_otp_email(to_email: str, login_url: str) -> bool:
    """Send the one-time login link. Returns False only when SMTP delivery failed."""
    if not settings.smtp_host:
        logger.info("SMTP not configured. Admin login link for %s: %s", to_email, login_url)
        return True

    message = _build_login_message(to_email, login_url)
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, _send_sync, message)
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send login email to %s", to_email)
        return False
    logger.info("Login email sent to %s", to_email)
    return True
