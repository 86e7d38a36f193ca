"""
Sub-user management for primary subscribers
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from ..auth.rbac import CurrentUser, get_current_user
from ..database import get_db
from ..dependencies import get_email_sender, get_entitlement_resolver
from ..metrics import EMAILS_SENT
from ..models import SubscriptionUsers
from ..notifications import messages
from ..notifications.sender import EmailSender
from ..services.entitlements import EntitlementResolver, normalize_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/subscription-users", tags=["subscription-users"])


class SubUsersUpdate(BaseModel):
    """Add one sub user (`email`) or replace the list (`subUsers`)"""
    email: Optional[EmailStr] = None
    sub_users: Optional[List[EmailStr]] = Field(None, alias="subUsers")

    class Config:
        populate_by_name = True


def _send(sender: EmailSender, notification) -> None:
    delivered = sender.send_best_effort(notification)
    EMAILS_SENT.labels(category=notification.category, status="sent" if delivered else "failed").inc()


def _status_payload(row: Optional[SubscriptionUsers], primary: Optional[str], is_sub_user: bool) -> dict:
    return {
        "isSubUser": is_sub_user,
        "primaryUser": primary,
        "subUsers": row.normalized_sub_users() if row else [],
    }


@router.get("")
async def get_subscription_users(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
):
    """Sub-user status for the caller.

    A sub user sees their primary; a primary sees their list.
    """
    membership = resolver.find_subscription_users_row(current_user.email)
    if membership:
        return _status_payload(None, normalize_email(membership.primary_user), True)

    row = db.query(SubscriptionUsers).filter(SubscriptionUsers.primary_user == current_user.email).first()
    return _status_payload(row, current_user.email if row else None, False)


@router.post("")
async def update_subscription_users(
    update: SubUsersUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
    sender: EmailSender = Depends(get_email_sender),
):
    """Add a sub user or replace the caller's sub-user list."""
    if update.email is None and update.sub_users is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either email or subUsers is required"
        )

    if resolver.find_primary_user(current_user.email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Sub users cannot manage sub users"
        )

    row = db.query(SubscriptionUsers).filter(SubscriptionUsers.primary_user == current_user.email).first()
    if row is None:
        row = SubscriptionUsers(primary_user=current_user.email, sub_users=[])
        db.add(row)

    current = row.normalized_sub_users()

    if update.email is not None:
        email = normalize_email(update.email)
        if email in current:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User is already a sub user"
            )
        if email == current_user.email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You cannot add yourself as a sub user"
            )
        new_list = current + [email]
    else:
        new_list = []
        for email in (normalize_email(e) for e in update.sub_users):
            if email and email != current_user.email and email not in new_list:
                new_list.append(email)

    added = [e for e in new_list if e not in current]
    removed = [e for e in current if e not in new_list]

    row.sub_users = new_list
    db.commit()
    db.refresh(row)

    logger.info(
        f"{current_user.email} updated sub users: +{len(added)} -{len(removed)} (total {len(new_list)})"
    )

    for email in added:
        _send(sender, messages.sub_user_added(email, current_user.email))
    for email in removed:
        _send(sender, messages.sub_user_removed(email, current_user.email))

    return {"success": True, **_status_payload(row, current_user.email, False)}


@router.delete("")
async def remove_subscription_user(
    email: EmailStr,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    sender: EmailSender = Depends(get_email_sender),
):
    """Remove one sub user from the caller's list."""
    email = normalize_email(email)
    row = db.query(SubscriptionUsers).filter(SubscriptionUsers.primary_user == current_user.email).first()

    if row is None or not row.has_sub_user(email):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Sub user not found"
        )

    row.sub_users = [e for e in row.normalized_sub_users() if e != email]
    db.commit()
    db.refresh(row)

    _send(sender, messages.sub_user_removed(email, current_user.email))

    return {"success": True, **_status_payload(row, current_user.email, False)}
