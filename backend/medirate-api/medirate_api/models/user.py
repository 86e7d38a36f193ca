"""User and admin allowlist models.

Users are keyed by email; the identity provider issues the bearer tokens and
the first authenticated request creates the row.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from .base import Base, isoformat, utcnow


class AccountRole(str, Enum):
    """Self-selected account role."""
    USER = "user"
    SUBSCRIPTION_MANAGER = "subscription_manager"


class User(Base):
    """Portal user.

    Attributes:
        email: Lower-cased email address (unique)
        role: Account role (user, subscription_manager)
        subscription_status: Last Stripe subscription status seen by the webhook
        plan_id: Last Stripe price id seen by the webhook
        stripe_customer_id: Stripe customer id once known
    """

    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    email: str = Column(String(255), nullable=False, unique=True, index=True)
    first_name: Optional[str] = Column(String(255), nullable=True)
    last_name: Optional[str] = Column(String(255), nullable=True)

    role: str = Column(String(50), nullable=False, default=AccountRole.USER.value)

    subscription_status: Optional[str] = Column(String(50), nullable=True)
    plan_id: Optional[str] = Column(String(255), nullable=True)
    stripe_customer_id: Optional[str] = Column(String(255), nullable=True, index=True)

    created_at: datetime = Column(DateTime, nullable=False, default=utcnow)
    updated_at: datetime = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    last_login_at: Optional[datetime] = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role,
            "subscriptionStatus": self.subscription_status,
            "planId": self.plan_id,
            "createdAt": isoformat(self.created_at),
            "lastLoginAt": isoformat(self.last_login_at),
        }

    @property
    def is_subscription_manager(self) -> bool:
        return self.role == AccountRole.SUBSCRIPTION_MANAGER.value


class AdminUser(Base):
    """Admin allowlist entry.

    Membership grants full access to the portal and to the admin endpoints.
    """

    __tablename__ = "admin_users"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    email: str = Column(String(255), nullable=False, unique=True, index=True)
    is_active: bool = Column(Boolean, nullable=False, default=True)
    added_by: Optional[str] = Column(String(255), nullable=True)
    created_at: datetime = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<AdminUser {self.email} active={self.is_active}>"
