"""Entitlement resolution.

Every route and script asks the same question, "can this email use the
portal?", through `EntitlementResolver`. Access is the union of:

- an admin allowlist entry
- a valid Stripe subscription on the email's customer
- membership in the sub-user list of a primary with a valid Stripe subscription
- a current wire-transfer subscription
- a current transferred subscription (as primary or sub user)
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Session

from ..models import (
    AdminUser,
    GrantStatus,
    SubscriptionUsers,
    TransferredSubscription,
    WireTransferSubscription,
    utcnow,
)
from .stripe_client import StripeClient, StripeError, timestamp_to_datetime

logger = logging.getLogger(__name__)

VALID_SUBSCRIPTION_STATUSES = {"active", "trialing", "past_due", "incomplete"}

NO_ACCESS_REASON = "No active subscription, not a sub-user, not a wire transfer user, and not an admin"


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_valid_subscription(subscription: dict, now: Optional[datetime] = None) -> bool:
    """Whether a Stripe subscription currently grants access.

    Canceled subscriptions keep access until the paid period ends.
    """
    now = now or utcnow()
    status = subscription.get("status")
    if status in VALID_SUBSCRIPTION_STATUSES:
        return True
    if status == "canceled":
        period_end = timestamp_to_datetime(subscription.get("current_period_end"))
        if period_end is None:
            items = (subscription.get("items") or {}).get("data") or []
            period_end = timestamp_to_datetime(items[0].get("current_period_end")) if items else None
        return period_end is not None and period_end > now
    return False


class AccessSource(str, Enum):
    """Ways an email can be entitled to the portal."""
    ADMIN = "admin"
    STRIPE_SUBSCRIPTION = "stripe_subscription"
    SUB_USER = "sub_user"
    WIRE_TRANSFER = "wire_transfer"
    TRANSFERRED_SUBSCRIPTION = "transferred_subscription"


SOURCE_REASONS = {
    AccessSource.ADMIN: "Admin user",
    AccessSource.STRIPE_SUBSCRIPTION: "Active Stripe subscription",
    AccessSource.SUB_USER: "Sub-user of {primary}",
    AccessSource.WIRE_TRANSFER: "Active wire transfer subscription",
    AccessSource.TRANSFERRED_SUBSCRIPTION: "Active transferred subscription",
}


@dataclass
class AccessDecision:
    """Outcome of resolving one email, with the evidence behind it."""
    email: str
    has_access: bool = False
    sources: List[AccessSource] = field(default_factory=list)
    access_reason: str = NO_ACCESS_REASON
    stripe_status: str = "no_customer_found"
    is_sub_user: bool = False
    primary_user_email: Optional[str] = None
    primary_user_has_active_subscription: bool = False
    is_wire_transfer_user: bool = False
    is_admin: bool = False
    is_transferred_user: bool = False
    in_subscription_users_table: bool = False
    subscription_users_role: str = "none"  # primary, sub-user, none

    def to_dict(self) -> dict:
        data = asdict(self)
        return {
            "email": self.email,
            "canAuthenticate": True,
            "hasAccess": self.has_access,
            "accessReason": self.access_reason,
            "sources": [source.value for source in self.sources],
            "details": {
                "hasActiveStripeSubscription": AccessSource.STRIPE_SUBSCRIPTION in self.sources,
                "stripeStatus": data["stripe_status"],
                "isSubUser": data["is_sub_user"],
                "primaryUserEmail": data["primary_user_email"],
                "primaryUserHasActiveSubscription": data["primary_user_has_active_subscription"],
                "isWireTransferUser": data["is_wire_transfer_user"],
                "isAdmin": data["is_admin"],
                "isTransferredUser": data["is_transferred_user"],
                "inSubscriptionUsersTable": data["in_subscription_users_table"],
                "subscriptionUsersRole": data["subscription_users_role"],
            },
        }


class EntitlementResolver:
    """Resolves portal access for emails.

    One resolver serves one request or script run; Stripe lookups are cached
    per email for its lifetime.
    """

    def __init__(self, db: Session, stripe_client: StripeClient, now: Optional[datetime] = None):
        self.db = db
        self.stripe_client = stripe_client
        self.now = now or utcnow()
        self._stripe_cache: Dict[str, Tuple[Optional[dict], str]] = {}

    def stripe_subscription_status(self, email: str) -> Tuple[Optional[dict], str]:
        """Look up the email's Stripe subscription.

        Returns:
            (valid_subscription_or_None, status_label) where the label is the
            subscription status or one of no_customer_found,
            no_active_subscription, error
        """
        email = normalize_email(email)
        if email in self._stripe_cache:
            return self._stripe_cache[email]

        try:
            customer = self.stripe_client.find_customer_by_email(email)
            if not customer:
                result = (None, "no_customer_found")
            else:
                subscriptions = self.stripe_client.list_subscriptions(customer["id"])
                valid = next((s for s in subscriptions if is_valid_subscription(s, self.now)), None)
                result = (valid, valid["status"] if valid else "no_active_subscription")
        except StripeError as e:
            logger.error(f"Stripe lookup failed for {email}: {e}")
            result = (None, "error")

        self._stripe_cache[email] = result
        return result

    def find_active_subscription(self, email: str) -> Optional[dict]:
        return self.stripe_subscription_status(email)[0]

    def find_subscription_users_row(self, email: str) -> Optional[SubscriptionUsers]:
        """Subscription-users row listing the email as a sub user."""
        email = normalize_email(email)
        # Text match narrows candidates; membership is checked on the parsed list
        candidates = (
            self.db.query(SubscriptionUsers)
            .filter(cast(SubscriptionUsers.sub_users, String).ilike(f"%{email}%"))
            .all()
        )
        for row in candidates:
            if row.has_sub_user(email):
                return row
        return None

    def find_primary_user(self, email: str) -> Optional[str]:
        row = self.find_subscription_users_row(email)
        return normalize_email(row.primary_user) if row else None

    def is_primary_user(self, email: str) -> bool:
        email = normalize_email(email)
        return (
            self.db.query(SubscriptionUsers)
            .filter(SubscriptionUsers.primary_user == email)
            .first()
            is not None
        )

    def find_wire_transfer(self, email: str, include_expired: bool = False) -> Optional[WireTransferSubscription]:
        """Most recent active wire-transfer row for the email.

        Only rows that are current are returned unless include_expired is set.
        """
        rows = (
            self.db.query(WireTransferSubscription)
            .filter(
                WireTransferSubscription.user_email == normalize_email(email),
                WireTransferSubscription.status == GrantStatus.ACTIVE.value,
            )
            .order_by(WireTransferSubscription.created_at.desc())
            .all()
        )
        for row in rows:
            if include_expired or (row.subscription_start_date <= self.now and not row.is_expired(self.now)):
                return row
        return None

    def find_transferred_subscription(self, email: str) -> Optional[TransferredSubscription]:
        email = normalize_email(email)
        rows = (
            self.db.query(TransferredSubscription)
            .filter(
                or_(
                    TransferredSubscription.sub_user_email == email,
                    (TransferredSubscription.primary_user_email == email)
                    & TransferredSubscription.sub_user_email.is_(None),
                )
            )
            .all()
        )
        for row in rows:
            if row.is_current(self.now) and self._transferred_primary_current(row):
                return row
        return None

    def _transferred_primary_current(self, row: TransferredSubscription) -> bool:
        if row.is_primary:
            return True
        primary = (
            self.db.query(TransferredSubscription)
            .filter(
                TransferredSubscription.primary_user_email == row.primary_user_email,
                TransferredSubscription.sub_user_email.is_(None),
            )
            .first()
        )
        # Sub users inherit the primary's dates; a missing primary row leaves the grant as is
        return primary is None or primary.is_current(self.now)

    def is_admin(self, email: str) -> bool:
        return (
            self.db.query(AdminUser)
            .filter(AdminUser.email == normalize_email(email), AdminUser.is_active.is_(True))
            .first()
            is not None
        )

    def resolve(self, email: str) -> AccessDecision:
        """Evaluate every entitlement source for an email."""
        email = normalize_email(email)
        decision = AccessDecision(email=email)
        reasons = []

        if self.is_admin(email):
            decision.is_admin = True
            decision.sources.append(AccessSource.ADMIN)
            reasons.append(SOURCE_REASONS[AccessSource.ADMIN])

        subscription, decision.stripe_status = self.stripe_subscription_status(email)
        if subscription:
            decision.sources.append(AccessSource.STRIPE_SUBSCRIPTION)
            reasons.append(SOURCE_REASONS[AccessSource.STRIPE_SUBSCRIPTION])

        primary = self.find_primary_user(email)
        if primary:
            decision.is_sub_user = True
            decision.in_subscription_users_table = True
            decision.subscription_users_role = "sub-user"
            decision.primary_user_email = primary
            if self.find_active_subscription(primary):
                decision.primary_user_has_active_subscription = True
                decision.sources.append(AccessSource.SUB_USER)
                reasons.append(SOURCE_REASONS[AccessSource.SUB_USER].format(primary=primary))
        elif self.is_primary_user(email):
            decision.in_subscription_users_table = True
            decision.subscription_users_role = "primary"

        if self.find_wire_transfer(email):
            decision.is_wire_transfer_user = True
            decision.sources.append(AccessSource.WIRE_TRANSFER)
            reasons.append(SOURCE_REASONS[AccessSource.WIRE_TRANSFER])

        if self.find_transferred_subscription(email):
            decision.is_transferred_user = True
            decision.sources.append(AccessSource.TRANSFERRED_SUBSCRIPTION)
            reasons.append(SOURCE_REASONS[AccessSource.TRANSFERRED_SUBSCRIPTION])

        decision.has_access = bool(decision.sources)
        if reasons:
            decision.access_reason = " + ".join(reasons)

        logger.debug(f"Access for {email}: {decision.has_access} ({decision.access_reason})")
        return decision

    def has_access(self, email: str) -> bool:
        return self.resolve(email).has_access

    def check_many(self, emails: List[str]) -> dict:
        """Resolve a batch of emails into the admin access-check report."""
        results = []
        for email in emails:
            if not normalize_email(email):
                continue
            results.append(self.resolve(email).to_dict())

        can_access = sum(1 for result in results if result["hasAccess"])
        return {
            "timestamp": self.now.isoformat(),
            "results": results,
            "summary": {
                "totalChecked": len(results),
                "canAccess": can_access,
                "cannotAccess": len(results) - can_access,
            },
        }
