"""
Excel export quota endpoints
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, StrictInt

from ..auth.rbac import require_access
from ..dependencies import get_usage_tracker
from ..metrics import EXPORT_RESERVATIONS_REFUSED, EXPORT_ROWS_RESERVED
from ..services.entitlements import AccessDecision
from ..services.usage import UsageError, UsageTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/excel-export", tags=["excel-export"])


class ExportReservation(BaseModel):
    """Rows the client is about to export"""
    row_count: StrictInt = Field(..., alias="rowCount")

    class Config:
        populate_by_name = True


@router.get("/check-usage")
async def check_usage(
    access: AccessDecision = Depends(require_access),
    tracker: UsageTracker = Depends(get_usage_tracker),
):
    """Remaining export rows in the current billing period."""
    return tracker.current_usage(access.email).to_dict()


@router.post("/check-usage")
async def reserve_rows(
    body: ExportReservation,
    access: AccessDecision = Depends(require_access),
    tracker: UsageTracker = Depends(get_usage_tracker),
):
    """Reserve rows for an export if the allowance covers them."""
    try:
        reserved, usage, message = tracker.reserve(access.email, body.row_count)
    except UsageError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if reserved:
        EXPORT_ROWS_RESERVED.inc(body.row_count)
    else:
        EXPORT_RESERVATIONS_REFUSED.inc()

    return {**usage.to_dict(), "canExport": reserved, "message": message}
