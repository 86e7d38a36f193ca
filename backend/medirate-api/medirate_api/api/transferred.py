"""
Transferred subscription endpoints

A transferred primary (row without a sub user) may add and remove its own
sub users.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from ..auth.rbac import CurrentUser, get_current_user, require_admin
from ..database import get_db
from ..dependencies import get_email_sender, get_entitlement_resolver
from ..models import GrantStatus, TransferredSubscription, as_naive_utc
from ..notifications import messages
from ..notifications.sender import EmailSender
from ..services.entitlements import EntitlementResolver, normalize_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/transferred-subscriptions", tags=["transferred-subscriptions"])
users_router = APIRouter(prefix="/api/v1/transferred-subscription-users", tags=["transferred-subscriptions"])


class TransferredCreate(BaseModel):
    """Transferred subscription creation schema"""
    primary_user_email: EmailStr = Field(..., alias="primaryUserEmail")
    sub_user_email: Optional[EmailStr] = Field(None, alias="subUserEmail")
    subscription_start_date: Optional[datetime] = Field(None, alias="subscriptionStartDate")
    subscription_end_date: Optional[datetime] = Field(None, alias="subscriptionEndDate")
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


class TransferredSubUser(BaseModel):
    email: EmailStr


def _primary_row(db: Session, email: str) -> Optional[TransferredSubscription]:
    return (
        db.query(TransferredSubscription)
        .filter(
            TransferredSubscription.primary_user_email == email,
            TransferredSubscription.sub_user_email.is_(None),
            TransferredSubscription.status == GrantStatus.ACTIVE.value,
        )
        .first()
    )


def _sub_user_rows(db: Session, primary_email: str):
    return (
        db.query(TransferredSubscription)
        .filter(
            TransferredSubscription.primary_user_email == primary_email,
            TransferredSubscription.sub_user_email.isnot(None),
        )
        .order_by(TransferredSubscription.created_at)
        .all()
    )


@router.get("")
async def get_transferred_status(
    current_user: CurrentUser = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
):
    """Transferred-subscription status for the caller."""
    row = resolver.find_transferred_subscription(current_user.email)
    if row is None:
        return {"isTransferredUser": False, "transferredData": None}

    return {
        "isTransferredUser": True,
        "isPrimary": row.is_primary,
        "transferredData": row.to_dict(),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_transferred_subscription(
    grant: TransferredCreate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Record a transferred subscription (admin only)."""
    primary = normalize_email(grant.primary_user_email)
    sub_user = normalize_email(grant.sub_user_email) or None
    start = as_naive_utc(grant.subscription_start_date)
    end = as_naive_utc(grant.subscription_end_date)

    if start and end and end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="subscriptionEndDate must be after subscriptionStartDate"
        )

    duplicate = (
        db.query(TransferredSubscription)
        .filter(
            TransferredSubscription.primary_user_email == primary,
            TransferredSubscription.sub_user_email.is_(None) if sub_user is None
            else TransferredSubscription.sub_user_email == sub_user,
        )
        .first()
    )
    if duplicate:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Transferred subscription already exists"
        )

    row = TransferredSubscription(
        primary_user_email=primary,
        sub_user_email=sub_user,
        subscription_start_date=start,
        subscription_end_date=end,
        status=GrantStatus.ACTIVE.value,
        notes=grant.notes,
    )
    db.add(row)
    db.commit()
    db.refresh(row)

    logger.info(f"{admin.email} recorded transferred subscription {primary} -> {sub_user}")
    return {"success": True, "data": row.to_dict()}


@users_router.get("")
async def list_transferred_sub_users(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Sub users under the caller's transferred subscription."""
    primary = _primary_row(db, current_user.email)
    if primary is None:
        return {"isPrimaryUser": False, "subUsers": []}

    return {
        "isPrimaryUser": True,
        "subUsers": [row.sub_user_email for row in _sub_user_rows(db, current_user.email)],
    }


@users_router.post("", status_code=status.HTTP_201_CREATED)
async def add_transferred_sub_user(
    body: TransferredSubUser,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    sender: EmailSender = Depends(get_email_sender),
):
    """Add a sub user to the caller's transferred subscription."""
    primary = _primary_row(db, current_user.email)
    if primary is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only transferred primary users can add sub users"
        )

    email = normalize_email(body.email)
    if email == current_user.email or email in {r.sub_user_email for r in _sub_user_rows(db, current_user.email)}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already on this subscription"
        )

    row = TransferredSubscription(
        primary_user_email=current_user.email,
        sub_user_email=email,
        subscription_start_date=primary.subscription_start_date,
        subscription_end_date=primary.subscription_end_date,
        status=GrantStatus.ACTIVE.value,
    )
    db.add(row)
    db.commit()

    sender.send_best_effort(messages.sub_user_added(email, current_user.email))

    return {"success": True, "subUsers": [r.sub_user_email for r in _sub_user_rows(db, current_user.email)]}


@users_router.delete("")
async def remove_transferred_sub_user(
    email: EmailStr,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    sender: EmailSender = Depends(get_email_sender),
):
    """Remove a sub user from the caller's transferred subscription."""
    if _primary_row(db, current_user.email) is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only transferred primary users can remove sub users"
        )

    email = normalize_email(email)
    row = (
        db.query(TransferredSubscription)
        .filter(
            TransferredSubscription.primary_user_email == current_user.email,
            TransferredSubscription.sub_user_email == email,
        )
        .first()
    )
    if not row:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Sub user not found"
        )

    db.delete(row)
    db.commit()

    sender.send_best_effort(messages.sub_user_removed(email, current_user.email))

    return {"success": True, "subUsers": [r.sub_user_email for r in _sub_user_rows(db, current_user.email)]}
