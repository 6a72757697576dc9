"""
Email service.
Sends account emails over SMTP; without a configured host the message is
only logged so local development works without a mail server.
"""
import logging
import smtplib
from email.message import EmailMessage

from firstmoments.constants import (
    SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASSWORD, MAIL_FROM, FRONTEND_URL,
    EMAIL_VERIFICATION_HOURS, PASSWORD_RESET_MINUTES,
)
from firstmoments.exceptions import EmailDeliveryException

logger = logging.getLogger("first_moments.email")


class EmailService:
    """Service for outgoing account emails"""

    def __init__(self, host=SMTP_HOST, port=SMTP_PORT, user=SMTP_USER, password=SMTP_PASSWORD):
        self.host = host
        self.port = port
        self.user = user
        self.password = password

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    def send(self, to: str, subject: str, body: str) -> bool:
        """
        Send a plain-text email.

        Returns:
            True if handed to the SMTP server, False if only logged

        Raises:
            EmailDeliveryException: If the SMTP server rejects the message
        """
        if not self.enabled:
            logger.info(f"SMTP not configured, email to {to} not sent: {subject}")
            return False

        msg = EmailMessage()
        msg["From"] = MAIL_FROM
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=15) as smtp:
                smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            raise EmailDeliveryException(str(e))

        logger.info(f"Email sent to {to}: {subject}")
        return True

    def send_verification_email(self, to: str, username: str, token: str) -> bool:
        link = f"{FRONTEND_URL}/verify-email/{token}"
        body = (
            f"Hi {username},\n\n"
            f"Welcome to First Moments! Confirm your email address by opening:\n{link}\n\n"
            f"The link expires in {EMAIL_VERIFICATION_HOURS} hours."
        )
        return self.send(to, "Verify your First Moments account", body)

    def send_password_reset_email(self, to: str, username: str, token: str) -> bool:
        link = f"{FRONTEND_URL}/reset-password/{token}"
        body = (
            f"Hi {username},\n\n"
            f"A password reset was requested for your account. Set a new password here:\n{link}\n\n"
            f"The link expires in {PASSWORD_RESET_MINUTES} minutes.\n"
            "If you did not request this, ignore this email."
        )
        return self.send(to, "Reset your First Moments password", body)
