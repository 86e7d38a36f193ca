"""Email verification codes and request throttling."""
from sqlalchemy import Column, DateTime, Integer, String

from .base import Base, utcnow


class EmailVerification(Base):
    """Pending verification code for one email address.

    Only the SHA-256 hash of the code is stored. `send_count` counts codes sent
    since `send_window_start` and backs the per-email daily limit.
    `failed_attempts` counts wrong guesses against the current code.
    """

    __tablename__ = "email_verifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    code_hash = Column(String(64), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    last_sent_at = Column(DateTime, nullable=False, default=utcnow)
    send_count = Column(Integer, nullable=False, default=0)
    send_window_start = Column(DateTime, nullable=False, default=utcnow)
    failed_attempts = Column(Integer, nullable=False, default=0)
    verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class VerificationRequestLog(Base):
    """One verification request from a client IP, for the rolling-window limit."""

    __tablename__ = "email_verification_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ip_address = Column(String(64), nullable=False, index=True)
    email = Column(String(255), nullable=True)
    requested_at = Column(DateTime, nullable=False, default=utcnow, index=True)
