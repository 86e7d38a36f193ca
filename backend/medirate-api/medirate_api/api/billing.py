"""
Stripe webhook and subscription management endpoints
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from ..auth.rbac import CurrentUser, get_current_user
from ..config.loader import Config, get_config
from ..database import get_db
from ..dependencies import get_email_sender, get_entitlement_resolver, get_stripe_client
from ..metrics import WEBHOOK_EVENTS
from ..notifications.sender import EmailSender
from ..services.billing import BillingError, SubscriptionManager, WebhookProcessor
from ..services.entitlements import EntitlementResolver, normalize_email
from ..services.stripe_client import StripeClient, StripeError, WebhookSignatureError, verify_webhook_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/stripe", tags=["stripe"])


class CancelRequest(BaseModel):
    """Subscription cancellation request"""
    email: Optional[EmailStr] = None
    cancel_at_period_end: bool = Field(True, alias="cancelAtPeriodEnd")

    class Config:
        populate_by_name = True


class ModifyRequest(BaseModel):
    """Plan change request"""
    new_price_id: str = Field(..., alias="newPriceId", min_length=1)
    email: Optional[EmailStr] = None

    class Config:
        populate_by_name = True


def _target_email(requested: Optional[str], current_user: CurrentUser, resolver: EntitlementResolver) -> str:
    """Callers manage their own subscription; admins may name another email."""
    email = normalize_email(requested) or current_user.email
    if email != current_user.email and not resolver.is_admin(current_user.email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage your own subscription"
        )
    return email


def _billing_call(func, *args):
    try:
        return func(*args)
    except BillingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except StripeError as e:
        logger.error(f"Stripe call failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Stripe error: {e}")


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    config: Config = Depends(get_config),
    stripe_client: StripeClient = Depends(get_stripe_client),
    sender: EmailSender = Depends(get_email_sender),
):
    """Receive Stripe events. The raw body is verified against Stripe-Signature."""
    payload = await request.body()
    try:
        event = verify_webhook_signature(
            payload,
            request.headers.get("stripe-signature"),
            config.stripe.webhook_secret,
            tolerance_seconds=config.stripe.webhook_tolerance_seconds,
        )
    except WebhookSignatureError as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook Error: {e}")

    event_type = event.get("type", "unknown")
    try:
        handled = WebhookProcessor(db, stripe_client, sender).process(event)
    except StripeError:
        db.rollback()
        WEBHOOK_EVENTS.labels(event_type=event_type, status="error").inc()
        raise

    WEBHOOK_EVENTS.labels(event_type=event_type, status="handled" if handled else "ignored").inc()
    return {"received": True, "handled": handled}


@router.post("/cancel-subscription")
async def cancel_subscription(
    body: CancelRequest,
    current_user: CurrentUser = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Cancel the caller's subscription, at period end by default."""
    email = _target_email(body.email, current_user, resolver)
    subscription = _billing_call(SubscriptionManager(stripe_client).cancel, email, body.cancel_at_period_end)
    return {
        "success": True,
        "subscription": {
            "id": subscription.get("id"),
            "status": subscription.get("status"),
            "cancelAtPeriodEnd": subscription.get("cancel_at_period_end"),
        },
    }


@router.post("/modify-subscription")
async def modify_subscription(
    body: ModifyRequest,
    current_user: CurrentUser = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Switch the caller's plan, refunding the unused part of the current period."""
    email = _target_email(body.email, current_user, resolver)
    result = _billing_call(SubscriptionManager(stripe_client).change_plan, email, body.new_price_id)
    subscription = result["subscription"]
    return {
        "success": True,
        "subscription": {"id": subscription.get("id"), "status": subscription.get("status")},
        "refundAmount": result["refundAmount"],
        "refundId": result["refundId"],
    }


@router.get("/plans")
async def list_plans(
    current_user: CurrentUser = Depends(get_current_user),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Active recurring plans."""
    return {"plans": _billing_call(SubscriptionManager(stripe_client).plans)}
