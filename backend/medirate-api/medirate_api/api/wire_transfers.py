"""
Wire-transfer subscription endpoints
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from ..auth.rbac import CurrentUser, get_current_user, require_admin
from ..database import get_db
from ..dependencies import get_entitlement_resolver
from ..models import GrantStatus, WireTransferSubscription, as_naive_utc
from ..services.entitlements import EntitlementResolver, normalize_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/wire-transfer-subscriptions", tags=["wire-transfers"])


class WireTransferCreate(BaseModel):
    """Wire-transfer grant creation schema"""
    user_email: EmailStr = Field(..., alias="userEmail")
    subscription_start_date: datetime = Field(..., alias="subscriptionStartDate")
    subscription_end_date: Optional[datetime] = Field(None, alias="subscriptionEndDate")
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


class WireTransferUpdate(BaseModel):
    """Wire-transfer grant update schema"""
    subscription_start_date: Optional[datetime] = Field(None, alias="subscriptionStartDate")
    subscription_end_date: Optional[datetime] = Field(None, alias="subscriptionEndDate")
    status: Optional[GrantStatus] = None
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


def _check_dates(start: datetime, end: Optional[datetime]) -> None:
    if end is not None and end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="subscriptionEndDate must be after subscriptionStartDate"
        )


@router.get("")
async def get_wire_transfer_status(
    current_user: CurrentUser = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
):
    """Wire-transfer status for the caller."""
    row = resolver.find_wire_transfer(current_user.email, include_expired=True)
    if row is None:
        return {"isWireTransferUser": False, "wireTransferData": None}

    if row.is_expired(resolver.now):
        return {"isWireTransferUser": False, "reason": "expired", "wireTransferData": row.to_dict()}

    if row.subscription_start_date > resolver.now:
        return {"isWireTransferUser": False, "reason": "not_started", "wireTransferData": row.to_dict()}

    return {"isWireTransferUser": True, "wireTransferData": row.to_dict()}


@router.get("/all", response_model=List[dict])
async def list_wire_transfers(
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """List all wire-transfer grants (admin only)."""
    rows = db.query(WireTransferSubscription).order_by(WireTransferSubscription.created_at.desc()).all()
    return [row.to_dict() for row in rows]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_wire_transfer(
    grant: WireTransferCreate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Grant a wire-transfer subscription (admin only)."""
    start = as_naive_utc(grant.subscription_start_date)
    end = as_naive_utc(grant.subscription_end_date)
    _check_dates(start, end)

    row = WireTransferSubscription(
        user_email=normalize_email(grant.user_email),
        subscription_start_date=start,
        subscription_end_date=end,
        status=GrantStatus.ACTIVE.value,
        notes=grant.notes,
    )
    db.add(row)
    db.commit()
    db.refresh(row)

    logger.info(f"{admin.email} granted wire-transfer subscription to {row.user_email} until {row.subscription_end_date}")
    return {"success": True, "data": row.to_dict()}


@router.patch("/{grant_id}")
async def update_wire_transfer(
    grant_id: int,
    update: WireTransferUpdate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Change dates or status of a wire-transfer grant (admin only)."""
    row = db.query(WireTransferSubscription).filter(WireTransferSubscription.id == grant_id).first()
    if not row:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Wire transfer subscription not found"
        )

    for field, value in update.dict(exclude_unset=True).items():
        if isinstance(value, datetime):
            value = as_naive_utc(value)
        elif isinstance(value, GrantStatus):
            value = value.value
        setattr(row, field, value)

    _check_dates(row.subscription_start_date, row.subscription_end_date)

    db.commit()
    db.refresh(row)

    return {"success": True, "data": row.to_dict()}
