"""
Published rate endpoints
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.rbac import require_access
from ..database import get_db
from ..models import utcnow
from ..services.entitlements import AccessDecision
from ..services.rate_data import list_modifiers, recent_rate_changes

router = APIRouter(prefix="/api/v1", tags=["rates"])


@router.get("/recent-rate-changes")
async def get_recent_rate_changes(
    days: int = Query(30, ge=1, le=3650),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    access: AccessDecision = Depends(require_access),
):
    """Latest rate per service with an effective date in the last `days` days."""
    return recent_rate_changes(db, utcnow().date(), days=days, limit=limit)


@router.get("/modifiers")
async def get_modifiers(
    db: Session = Depends(get_db),
    access: AccessDecision = Depends(require_access),
):
    """Procedure modifiers found in code definitions, sorted by code."""
    return list_modifiers(db)
