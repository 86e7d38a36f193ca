"""
Entitlement check endpoints
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..auth.rbac import CurrentUser, get_current_user, require_admin
from ..dependencies import get_entitlement_resolver
from ..metrics import ACCESS_DECISIONS
from ..services.entitlements import EntitlementResolver

logger = logging.getLogger(__name__)

router = APIRouter(tags=["access"])

MAX_BATCH_EMAILS = 500


class AccessCheckRequest(BaseModel):
    """Batch access check request"""
    emails: List[str] = Field(..., description="Emails to check")


@router.get("/api/v1/access/me")
async def get_my_access(
    current_user: CurrentUser = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
):
    """Resolve the caller's entitlement."""
    decision = resolver.resolve(current_user.email)
    ACCESS_DECISIONS.labels(outcome="granted" if decision.has_access else "denied").inc()
    return decision.to_dict()


@router.post("/api/v1/admin/access-check")
async def check_email_access(
    request: AccessCheckRequest,
    admin: CurrentUser = Depends(require_admin),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
):
    """Resolve entitlement for a batch of emails (admin only)."""
    if not request.emails:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="emails must be a non-empty list"
        )
    if len(request.emails) > MAX_BATCH_EMAILS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_BATCH_EMAILS} emails can be checked at once"
        )

    logger.info(f"{admin.email} checking access for {len(request.emails)} email(s)")
    report = resolver.check_many(request.emails)
    for result in report["results"]:
        ACCESS_DECISIONS.labels(outcome="granted" if result["hasAccess"] else "denied").inc()
    return report
