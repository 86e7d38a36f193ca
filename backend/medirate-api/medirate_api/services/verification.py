"""Email verification codes with request throttling.

Limits, all answered with HTTP 429:
- per client IP, a rolling window of requests
- per email, a cooldown between codes
- per email, a daily number of codes

A code stops working after `max_attempts` wrong guesses.
"""
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..config.loader import VerificationConfig
from ..models import EmailVerification, VerificationRequestLog, utcnow
from ..notifications import messages
from ..notifications.sender import EmailSender
from .entitlements import normalize_email

logger = logging.getLogger(__name__)


class ThrottledError(Exception):
    """Too many verification requests."""

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class VerificationError(Exception):
    """Code is wrong, expired or was never requested."""


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


def generate_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


class VerificationService:
    """Issues and checks six-digit email verification codes."""

    def __init__(self, db: Session, settings: VerificationConfig, sender: EmailSender,
                 now: Optional[datetime] = None):
        self.db = db
        self.settings = settings
        self.sender = sender
        self.now = now or utcnow()

    def _check_ip(self, ip_address: str) -> None:
        window_start = self.now - timedelta(seconds=self.settings.ip_window_seconds)
        self.db.query(VerificationRequestLog).filter(
            VerificationRequestLog.ip_address == ip_address,
            VerificationRequestLog.requested_at <= window_start,
        ).delete(synchronize_session=False)

        recent = (
            self.db.query(VerificationRequestLog)
            .filter(
                VerificationRequestLog.ip_address == ip_address,
                VerificationRequestLog.requested_at > window_start,
            )
            .order_by(VerificationRequestLog.requested_at)
            .all()
        )
        if len(recent) >= self.settings.ip_window_limit:
            retry_after = int((recent[0].requested_at - window_start).total_seconds()) + 1
            self.db.commit()
            raise ThrottledError("Too many verification requests from this address", retry_after)

    def _check_email(self, record: Optional[EmailVerification]) -> None:
        if record is None:
            return

        cooldown_ends = record.last_sent_at + timedelta(seconds=self.settings.cooldown_seconds)
        if self.now < cooldown_ends:
            raise ThrottledError(
                "Please wait before requesting another code",
                int((cooldown_ends - self.now).total_seconds()) + 1,
            )

        if self.now - record.send_window_start >= timedelta(days=1):
            record.send_count = 0
            record.send_window_start = self.now

        if record.send_count >= self.settings.daily_limit:
            window_ends = record.send_window_start + timedelta(days=1)
            raise ThrottledError(
                "Daily verification limit reached for this email",
                int((window_ends - self.now).total_seconds()) + 1,
            )

    def request_code(self, email: str, ip_address: str) -> datetime:
        """Store and send a new code.

        Returns:
            Expiry time of the code

        Raises:
            ThrottledError: If any limit is exceeded
            EmailDeliveryError: If the email could not be sent
        """
        email = normalize_email(email)
        self._check_ip(ip_address)

        record = self.db.query(EmailVerification).filter(EmailVerification.email == email).first()
        self._check_email(record)

        code = generate_code()
        expires_at = self.now + timedelta(minutes=self.settings.code_ttl_minutes)

        if record is None:
            record = EmailVerification(email=email, send_count=0, send_window_start=self.now)
            self.db.add(record)

        record.code_hash = hash_code(code)
        record.expires_at = expires_at
        record.last_sent_at = self.now
        record.send_count = (record.send_count or 0) + 1
        record.failed_attempts = 0
        record.verified_at = None

        self.db.add(VerificationRequestLog(ip_address=ip_address, email=email, requested_at=self.now))
        self.db.commit()

        self.sender.send_transactional(messages.verification_code(email, code, self.settings.code_ttl_minutes))
        logger.info(f"Sent verification code to {email}")
        return expires_at

    def verify(self, email: str, code: str) -> None:
        """Mark the email verified if the code matches.

        Raises:
            VerificationError: If no code is pending, it expired, it does not match
                or too many wrong codes were tried
        """
        email = normalize_email(email)
        record = self.db.query(EmailVerification).filter(EmailVerification.email == email).first()
        if record is None or record.verified_at is not None:
            raise VerificationError("No pending verification for this email")
        if (record.failed_attempts or 0) >= self.settings.max_attempts:
            raise VerificationError("Too many incorrect attempts; request a new code")
        if self.now > record.expires_at:
            raise VerificationError("Verification code has expired")
        if not hmac.compare_digest(record.code_hash, hash_code(code.strip())):
            record.failed_attempts = (record.failed_attempts or 0) + 1
            if record.failed_attempts >= self.settings.max_attempts:
                logger.warning(f"Verification code for {email} locked after {record.failed_attempts} failures")
            self.db.commit()
            raise VerificationError("Invalid verification code")

        record.verified_at = self.now
        self.db.commit()
        logger.info(f"Verified {email}")
