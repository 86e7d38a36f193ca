"""
Rate development endpoints: provider alerts, legislative bills and state plan amendments
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth.rbac import CurrentUser, require_access, require_admin
from ..database import get_db
from ..models import LegislativeBill, ProviderAlert, StatePlanAmendment
from ..services.entitlements import AccessDecision
from ..services.rate_data import RateDataError, rate_developments, update_record

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/rate-developments", tags=["rate-developments"])


class ProviderAlertUpdate(BaseModel):
    """Provider alert edit schema"""
    state: Optional[str] = None
    payer: Optional[str] = None
    subject: Optional[str] = None
    summary: Optional[str] = None
    announcement_date: Optional[Any] = None
    link: Optional[str] = None
    service_lines_impacted: Optional[str] = None
    is_new: Optional[bool] = None

    class Config:
        extra = "forbid"


class BillUpdate(BaseModel):
    """Legislative bill edit schema"""
    state: Optional[str] = None
    bill_number: Optional[str] = None
    name: Optional[str] = None
    last_action: Optional[str] = None
    action_date: Optional[Any] = None
    sponsor_list: Optional[str] = None
    bill_progress: Optional[str] = None
    ai_summary: Optional[str] = None
    service_lines_impacted: Optional[str] = None
    service_lines_impacted_1: Optional[str] = None
    service_lines_impacted_2: Optional[str] = None
    service_lines_impacted_3: Optional[str] = None
    is_new: Optional[bool] = None

    class Config:
        extra = "forbid"


class StatePlanAmendmentUpdate(BaseModel):
    """State plan amendment edit schema; spreadsheet column names are accepted too"""
    state: Optional[str] = None
    transmittal_number: Optional[str] = Field(None, alias="Transmittal Number")
    subject: Optional[str] = None
    effective_date: Optional[Any] = Field(None, alias="Effective Date")
    approval_date: Optional[Any] = Field(None, alias="Approval Date")
    link: Optional[str] = None
    service_lines_impacted: Optional[str] = None
    is_new: Optional[bool] = None

    class Config:
        extra = "forbid"
        populate_by_name = True


def _apply(db: Session, record, update: BaseModel, date_fields) -> dict:
    changes = update.dict(exclude_unset=True)
    try:
        update_record(record, changes, date_fields)
    except RateDataError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    db.commit()
    db.refresh(record)
    return record.to_dict()


def _get_or_404(db: Session, model, label: str, **filters):
    record = db.query(model).filter_by(**filters).first()
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} not found"
        )
    return record


@router.get("/data")
async def get_rate_developments(
    db: Session = Depends(get_db),
    access: AccessDecision = Depends(require_access),
):
    """Provider alerts (newest first), legislative bills and state plan amendments."""
    return rate_developments(db)


@router.put("/provider-alerts/{alert_id}")
async def update_provider_alert(
    alert_id: int,
    update: ProviderAlertUpdate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Edit a provider alert (admin only)."""
    alert = _get_or_404(db, ProviderAlert, "Provider alert", id=alert_id)
    result = _apply(db, alert, update, ("announcement_date",))
    logger.info(f"{admin.email} updated provider alert {alert_id}")
    return {"success": True, "data": result}


@router.delete("/provider-alerts/{alert_id}")
async def delete_provider_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Delete a provider alert (admin only)."""
    db.delete(_get_or_404(db, ProviderAlert, "Provider alert", id=alert_id))
    db.commit()
    logger.info(f"{admin.email} deleted provider alert {alert_id}")
    return {"message": "Provider alert deleted successfully"}


@router.put("/bills")
async def update_bill(
    update: BillUpdate,
    url: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Edit a legislative bill, identified by its URL (admin only)."""
    bill = _get_or_404(db, LegislativeBill, "Bill", url=url.strip())
    result = _apply(db, bill, update, ("action_date",))
    logger.info(f"{admin.email} updated bill {url}")
    return {"success": True, "data": result}


@router.delete("/bills")
async def delete_bill(
    url: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Delete a legislative bill, identified by its URL (admin only)."""
    db.delete(_get_or_404(db, LegislativeBill, "Bill", url=url.strip()))
    db.commit()
    logger.info(f"{admin.email} deleted bill {url}")
    return {"message": "Bill deleted successfully"}


@router.put("/state-plan-amendments/{amendment_id}")
async def update_state_plan_amendment(
    amendment_id: int,
    update: StatePlanAmendmentUpdate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Edit a state plan amendment (admin only).

    Dates may be ISO or MM/DD/YYYY text, or spreadsheet serial numbers.
    """
    amendment = _get_or_404(db, StatePlanAmendment, "State plan amendment", id=amendment_id)
    result = _apply(db, amendment, update, ("effective_date", "approval_date"))
    logger.info(f"{admin.email} updated state plan amendment {amendment_id}")
    return {"success": True, "data": result}


@router.delete("/state-plan-amendments/{amendment_id}")
async def delete_state_plan_amendment(
    amendment_id: int,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Delete a state plan amendment (admin only)."""
    db.delete(_get_or_404(db, StatePlanAmendment, "State plan amendment", id=amendment_id))
    db.commit()
    logger.info(f"{admin.email} deleted state plan amendment {amendment_id}")
    return {"message": "State plan amendment deleted successfully"}
