"""
Email sender service - Brevo transactional API and SMTP
"""

import html
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import httpx

from ..config.loader import BrevoConfig, NotificationConfig

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when an email could not be handed to the provider."""


@dataclass
class NotificationRequest:
    """Email notification data"""
    recipient_email: str
    subject: str
    message: str
    recipient_name: Optional[str] = None
    category: str = "general"  # welcome, verification_code, sub_user_added, etc.
    reply_to: Optional[str] = None
    metadata: Optional[dict] = None


class EmailSender:
    """Sends transactional email through Brevo and contact mail over SMTP"""

    def __init__(self, brevo: BrevoConfig, smtp: NotificationConfig):
        self.brevo = brevo
        self.smtp = smtp

    def send_transactional(self, notification: NotificationRequest) -> Optional[str]:
        """Send via the Brevo transactional API.

        Returns:
            Brevo message id, if reported

        Raises:
            EmailDeliveryError: If Brevo is not configured or rejects the request
        """
        if not self.brevo.api_key:
            raise EmailDeliveryError("Brevo API key is not configured")

        recipient = {"email": notification.recipient_email}
        if notification.recipient_name:
            recipient["name"] = notification.recipient_name

        payload = {
            "sender": {"name": self.brevo.sender_name, "email": self.brevo.sender_email},
            "to": [recipient],
            "subject": notification.subject,
            "textContent": notification.message,
            "htmlContent": text_to_html(notification.message),
            "tags": [notification.category],
        }
        if notification.reply_to:
            payload["replyTo"] = {"email": notification.reply_to}

        try:
            response = httpx.post(
                self.brevo.api_url,
                json=payload,
                headers={"api-key": self.brevo.api_key, "accept": "application/json"},
                timeout=self.brevo.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send {notification.category} email to {notification.recipient_email}: {e}")
            raise EmailDeliveryError(str(e))

        logger.info(f"Email sent to {notification.recipient_email}: {notification.subject}")
        try:
            return response.json().get("messageId")
        except ValueError:
            return None

    def send_smtp(self, notification: NotificationRequest) -> None:
        """Send a plain email over SMTP (contact form)"""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = notification.subject
        msg["From"] = self.smtp.smtp_from_email
        msg["To"] = notification.recipient_email
        if notification.reply_to:
            msg["Reply-To"] = notification.reply_to

        msg.attach(MIMEText(notification.message, "plain"))
        msg.attach(MIMEText(text_to_html(notification.message), "html"))

        try:
            with smtplib.SMTP(self.smtp.smtp_host, self.smtp.smtp_port) as server:
                if self.smtp.smtp_username and self.smtp.smtp_password:
                    server.starttls()
                    server.login(self.smtp.smtp_username, self.smtp.smtp_password)

                server.sendmail(
                    self.smtp.smtp_from_email,
                    notification.recipient_email,
                    msg.as_string()
                )
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {notification.recipient_email}: {e}")
            raise EmailDeliveryError(str(e))

        logger.info(f"SMTP email sent to {notification.recipient_email}: {notification.subject}")

    def send_best_effort(self, notification: NotificationRequest) -> bool:
        """Send without failing the caller; used for courtesy emails"""
        try:
            self.send_transactional(notification)
            return True
        except EmailDeliveryError as e:
            logger.warning(f"Skipped {notification.category} email to {notification.recipient_email}: {e}")
            return False


def text_to_html(text: str) -> str:
    """Wrap plain text paragraphs in minimal HTML"""
    paragraphs = [html.escape(p).replace("\n", "<br>") for p in text.split("\n\n")]
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    return f"<html><body>{body}</body></html>"
