"""Stripe billing: webhook processing and subscription changes."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..metrics import EMAILS_SENT
from ..models import AccountRole, Payment, Subscription, User, utcnow
from ..notifications import messages
from ..notifications.sender import EmailSender
from .entitlements import VALID_SUBSCRIPTION_STATUSES, normalize_email
from .stripe_client import StripeClient, StripeError, subscription_period, timestamp_to_datetime

logger = logging.getLogger(__name__)

SELECTABLE_ROLES = {role.value for role in AccountRole}


class BillingError(Exception):
    """Subscription change that cannot be carried out."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def prorated_refund_amount(amount_paid: int, period_start: datetime, period_end: datetime, now: datetime) -> int:
    """Unused share of the amount paid for the current period, in cents."""
    total = (period_end - period_start).total_seconds()
    if total <= 0 or amount_paid <= 0:
        return 0
    unused = min(max((period_end - now).total_seconds(), 0), total)
    return int(amount_paid * unused // total)


def _first_price_id(subscription: dict) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


class WebhookProcessor:
    """Applies verified Stripe events to the local database."""

    def __init__(self, db: Session, stripe_client: StripeClient, email_sender: EmailSender):
        self.db = db
        self.stripe_client = stripe_client
        self.email_sender = email_sender
        self.handlers = {
            "customer.subscription.created": self.handle_subscription_change,
            "customer.subscription.updated": self.handle_subscription_change,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "invoice.payment_succeeded": self.handle_payment_succeeded,
            "checkout.session.completed": self.handle_checkout_completed,
        }

    def process(self, event: dict) -> bool:
        """Dispatch an event. Returns False for event types that are ignored."""
        event_type = event.get("type", "")
        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info(f"Ignoring Stripe event {event_type}")
            return False

        data = event.get("data") or {}
        handler(data.get("object") or {}, data.get("previous_attributes") or {}, event_type)
        self.db.commit()
        return True

    def _customer_email(self, customer_id: Optional[str]) -> Optional[str]:
        if not customer_id:
            return None
        user = self.db.query(User).filter(User.stripe_customer_id == customer_id).first()
        if user:
            return user.email
        customer = self.stripe_client.retrieve_customer(customer_id)
        return normalize_email(customer.get("email")) or None

    def _sync_subscription(self, subscription: dict, email: Optional[str]) -> Subscription:
        row = (
            self.db.query(Subscription)
            .filter(Subscription.stripe_subscription_id == subscription["id"])
            .first()
        )
        if row is None:
            row = Subscription(stripe_subscription_id=subscription["id"])
            self.db.add(row)

        period_start, period_end = subscription_period(subscription)
        row.stripe_customer_id = subscription.get("customer")
        row.user_email = email or row.user_email
        row.status = subscription.get("status", "unknown")
        row.plan_id = _first_price_id(subscription)
        row.current_period_start = period_start
        row.current_period_end = period_end
        row.cancel_at_period_end = bool(subscription.get("cancel_at_period_end"))
        return row

    def _user(self, email: str) -> User:
        user = self.db.query(User).filter(User.email == email).first()
        if user is None:
            user = User(email=email)
            self.db.add(user)
        return user

    def handle_subscription_change(self, subscription: dict, previous: dict, event_type: str) -> None:
        email = self._customer_email(subscription.get("customer"))
        self._sync_subscription(subscription, email)
        if not email:
            logger.warning(f"No customer email for subscription {subscription.get('id')}")
            return

        user = self._user(email)
        user.subscription_status = subscription.get("status")
        user.plan_id = _first_price_id(subscription)
        user.stripe_customer_id = subscription.get("customer")

        selected_role = (subscription.get("metadata") or {}).get("selectedRole")
        if selected_role in SELECTABLE_ROLES:
            user.role = selected_role

        became_active = subscription.get("status") == "active" and (
            event_type == "customer.subscription.created"
            or ("status" in previous and previous["status"] != "active")
        )
        if became_active:
            notification = messages.welcome_subscriber(email)
            delivered = self.email_sender.send_best_effort(notification)
            EMAILS_SENT.labels(category=notification.category, status="sent" if delivered else "failed").inc()

        logger.info(f"Subscription {subscription.get('id')} for {email} is {subscription.get('status')}")

    def handle_subscription_deleted(self, subscription: dict, previous: dict, event_type: str) -> None:
        row = (
            self.db.query(Subscription)
            .filter(Subscription.stripe_subscription_id == subscription.get("id"))
            .first()
        )
        if row is None:
            row = self._sync_subscription(subscription, self._customer_email(subscription.get("customer")))
        row.status = "canceled"

        if row.user_email:
            user = self.db.query(User).filter(User.email == row.user_email).first()
            if user:
                user.subscription_status = "canceled"
        logger.info(f"Subscription {subscription.get('id')} canceled")

    def handle_payment_succeeded(self, invoice: dict, previous: dict, event_type: str) -> None:
        invoice_id = invoice.get("id")
        if self.db.query(Payment).filter(Payment.stripe_invoice_id == invoice_id).first():
            return

        email = normalize_email(invoice.get("customer_email")) or self._customer_email(invoice.get("customer"))
        paid_at = timestamp_to_datetime((invoice.get("status_transitions") or {}).get("paid_at"))
        self.db.add(Payment(
            stripe_invoice_id=invoice_id,
            stripe_subscription_id=invoice.get("subscription"),
            user_email=email,
            amount_paid=int(invoice.get("amount_paid") or 0),
            currency=invoice.get("currency") or "usd",
            status=invoice.get("status") or "paid",
            paid_at=paid_at or utcnow(),
        ))
        logger.info(f"Recorded payment {invoice_id} from {email}")

    def handle_checkout_completed(self, session: dict, previous: dict, event_type: str) -> None:
        subscription_id = session.get("subscription")
        if not subscription_id:
            return
        subscription = self.stripe_client.retrieve_subscription(subscription_id)
        if session.get("metadata") and not subscription.get("metadata"):
            subscription["metadata"] = session["metadata"]
        self.handle_subscription_change(subscription, {"status": None}, "customer.subscription.updated")


class SubscriptionManager:
    """Cancel and change plans for a customer's current subscription."""

    def __init__(self, stripe_client: StripeClient, now: Optional[datetime] = None):
        self.stripe_client = stripe_client
        self.now = now or utcnow()

    def current_subscription(self, email: str) -> dict:
        customer = self.stripe_client.find_customer_by_email(normalize_email(email))
        if not customer:
            raise BillingError("No Stripe customer found for this email", status_code=404)

        subscriptions = self.stripe_client.list_subscriptions(customer["id"])
        for subscription in subscriptions:
            if subscription.get("status") in VALID_SUBSCRIPTION_STATUSES:
                return subscription
        raise BillingError("No active subscription found", status_code=404)

    def cancel(self, email: str, at_period_end: bool = True) -> dict:
        subscription = self.current_subscription(email)
        if at_period_end:
            updated = self.stripe_client.update_subscription(subscription["id"], {"cancel_at_period_end": True})
        else:
            updated = self.stripe_client.cancel_subscription(subscription["id"])
        logger.info(f"Canceled subscription {subscription['id']} for {email} (at_period_end={at_period_end})")
        return updated

    def change_plan(self, email: str, new_price_id: str) -> dict:
        """Refund the unused part of the current period and switch price.

        The new price starts without proration; a subscription scheduled to
        cancel is reactivated.
        """
        subscription = self.current_subscription(email)
        items = (subscription.get("items") or {}).get("data") or []
        if not items:
            raise BillingError("Subscription has no items")
        if _first_price_id(subscription) == new_price_id:
            raise BillingError("Subscription is already on this plan")

        refund_amount = 0
        refund_id = None
        invoice_id = subscription.get("latest_invoice")
        if isinstance(invoice_id, dict):
            invoice_id = invoice_id.get("id")
        period_start, period_end = subscription_period(subscription)

        if invoice_id and period_start and period_end:
            invoice = self.stripe_client.retrieve_invoice(invoice_id)
            refund_amount = prorated_refund_amount(
                int(invoice.get("amount_paid") or 0), period_start, period_end, self.now
            )
            if refund_amount > 0:
                try:
                    refund = self.stripe_client.create_refund(
                        refund_amount,
                        charge=invoice.get("charge"),
                        payment_intent=invoice.get("payment_intent"),
                    )
                    refund_id = refund.get("id")
                except StripeError as e:
                    logger.error(f"Refund of {refund_amount} for {email} failed: {e}")
                    refund_amount = 0

        params = {
            "items": [{"id": items[0]["id"], "price": new_price_id}],
            "proration_behavior": "none",
        }
        if subscription.get("cancel_at_period_end"):
            params["cancel_at_period_end"] = False

        try:
            updated = self.stripe_client.update_subscription(subscription["id"], params)
        except StripeError as e:
            if refund_id:
                logger.error(
                    f"Refund {refund_id} of {refund_amount} issued for {email} but switching "
                    f"{subscription['id']} to {new_price_id} failed: {e}"
                )
            raise
        logger.info(f"Changed {email} to price {new_price_id}; refunded {refund_amount}")
        return {"subscription": updated, "refundAmount": refund_amount, "refundId": refund_id}

    def plans(self) -> list:
        plans = []
        for price in self.stripe_client.list_prices():
            product = price.get("product")
            if not isinstance(product, dict):
                product = {"id": product}
            if product.get("active") is False:
                continue
            plans.append({
                "id": price.get("id"),
                "productId": product.get("id"),
                "name": product.get("name"),
                "description": product.get("description"),
                "amount": price.get("unit_amount"),
                "currency": price.get("currency"),
                "interval": (price.get("recurring") or {}).get("interval"),
            })
        return sorted(plans, key=lambda p: (p["amount"] is None, p["amount"] or 0))
