"""Subscription models: Stripe mirror, delegation and manual grants.

Reference: entitlement sources (Stripe, sub-user delegation, wire transfer,
transferred subscription)
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from .base import Base, isoformat, utcnow


class GrantStatus(str, Enum):
    """Status of a manually granted subscription."""
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELED = "canceled"


class Subscription(Base):
    """Local mirror of a Stripe subscription, maintained by the webhook."""

    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stripe_subscription_id = Column(String(255), nullable=False, unique=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    user_email = Column(String(255), nullable=True, index=True)
    status = Column(String(50), nullable=False)
    plan_id = Column(String(255), nullable=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Subscription {self.stripe_subscription_id} ({self.status})>"


class Payment(Base):
    """Paid Stripe invoice."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stripe_invoice_id = Column(String(255), nullable=False, unique=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    user_email = Column(String(255), nullable=True, index=True)
    amount_paid = Column(Integer, nullable=False)  # cents
    currency = Column(String(10), nullable=False, default="usd")
    status = Column(String(50), nullable=False)
    paid_at = Column(DateTime, nullable=False, default=utcnow)


class SubscriptionUsers(Base):
    """Sub-user list owned by a primary subscriber.

    `sub_users` is a JSON list of lower-cased emails. Assign a new list when
    changing it so the ORM sees the update.
    """

    __tablename__ = "subscription_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    primary_user = Column(String(255), nullable=False, unique=True, index=True)
    sub_users = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<SubscriptionUsers {self.primary_user} ({len(self.sub_users or [])} sub users)>"

    def normalized_sub_users(self) -> List[str]:
        return [email.strip().lower() for email in (self.sub_users or []) if email]

    def has_sub_user(self, email: str) -> bool:
        return email in self.normalized_sub_users()


class WireTransferSubscription(Base):
    """Subscription paid by wire transfer and granted manually."""

    __tablename__ = "wire_transfer_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_email = Column(String(255), nullable=False, index=True)
    subscription_start_date = Column(DateTime, nullable=False)
    subscription_end_date = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default=GrantStatus.ACTIVE.value, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<WireTransferSubscription {self.user_email} ({self.status})>"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.subscription_end_date is None:
            return False
        return (now or utcnow()) > self.subscription_end_date

    def is_current(self, now: Optional[datetime] = None) -> bool:
        """Active, started and not past its end date."""
        now = now or utcnow()
        return (
            self.status == GrantStatus.ACTIVE.value
            and self.subscription_start_date <= now
            and not self.is_expired(now)
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userEmail": self.user_email,
            "subscriptionStartDate": isoformat(self.subscription_start_date),
            "subscriptionEndDate": isoformat(self.subscription_end_date),
            "status": self.status,
            "notes": self.notes,
            "createdAt": isoformat(self.created_at),
        }


class TransferredSubscription(Base):
    """Subscription transferred from another account.

    A row with an empty `sub_user_email` marks the transferred primary user;
    each additional row adds one sub user under that primary.
    """

    __tablename__ = "transferred_subscriptions"
    __table_args__ = (
        UniqueConstraint("primary_user_email", "sub_user_email", name="uq_transferred_primary_sub"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    primary_user_email = Column(String(255), nullable=False, index=True)
    sub_user_email = Column(String(255), nullable=True, index=True)
    subscription_start_date = Column(DateTime, nullable=True)
    subscription_end_date = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default=GrantStatus.ACTIVE.value)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<TransferredSubscription {self.primary_user_email} -> {self.sub_user_email}>"

    @property
    def is_primary(self) -> bool:
        return not self.sub_user_email

    def is_current(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if self.status != GrantStatus.ACTIVE.value:
            return False
        if self.subscription_start_date and self.subscription_start_date > now:
            return False
        return self.subscription_end_date is None or self.subscription_end_date >= now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "primaryUserEmail": self.primary_user_email,
            "subUserEmail": self.sub_user_email,
            "subscriptionStartDate": isoformat(self.subscription_start_date),
            "subscriptionEndDate": isoformat(self.subscription_end_date),
            "status": self.status,
            "createdAt": isoformat(self.created_at),
        }
