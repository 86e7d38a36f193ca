"""
Dashboard template endpoints
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth.rbac import CurrentUser, get_current_user
from ..database import get_db
from ..models import DashboardTemplate

router = APIRouter(prefix="/api/v1/dashboard-templates", tags=["dashboard-templates"])


class TemplateCreate(BaseModel):
    """Template creation schema"""
    template_name: str = Field(..., min_length=1, max_length=255)
    template_data: Dict[str, Any]
    page_name: str = Field("dashboard", min_length=1, max_length=100)


class TemplateUpdate(BaseModel):
    """Template update schema"""
    template_name: Optional[str] = Field(None, min_length=1, max_length=255)
    template_data: Optional[Dict[str, Any]] = None


def _name_taken(db: Session, user_email: str, page_name: str, name: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(DashboardTemplate).filter(
        DashboardTemplate.user_email == user_email,
        DashboardTemplate.page_name == page_name,
        DashboardTemplate.template_name == name,
    )
    if exclude_id is not None:
        query = query.filter(DashboardTemplate.id != exclude_id)
    return query.first() is not None


def _owned_template(db: Session, template_id: int, user_email: str) -> DashboardTemplate:
    template = (
        db.query(DashboardTemplate)
        .filter(DashboardTemplate.id == template_id, DashboardTemplate.user_email == user_email)
        .first()
    )
    if not template:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Template not found"
        )
    return template


@router.get("")
async def list_templates(
    page_name: str = "dashboard",
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """List the caller's templates for a page, newest first."""
    templates = (
        db.query(DashboardTemplate)
        .filter(DashboardTemplate.user_email == current_user.email, DashboardTemplate.page_name == page_name)
        .order_by(DashboardTemplate.created_at.desc(), DashboardTemplate.id.desc())
        .all()
    )
    return {"templates": [t.to_dict() for t in templates]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_template(
    template: TemplateCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Save a new template."""
    name = template.template_name.strip()
    if _name_taken(db, current_user.email, template.page_name, name):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A template with this name already exists"
        )

    db_template = DashboardTemplate(
        user_email=current_user.email,
        page_name=template.page_name,
        template_name=name,
        template_data=template.template_data,
    )
    db.add(db_template)
    db.commit()
    db.refresh(db_template)

    return {"template": db_template.to_dict()}


@router.put("/{template_id}")
async def update_template(
    template_id: int,
    update: TemplateUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Rename a template or replace its filters."""
    template = _owned_template(db, template_id, current_user.email)

    changes = update.dict(exclude_unset=True)
    if changes.get("template_name"):
        changes["template_name"] = changes["template_name"].strip()
        if _name_taken(db, current_user.email, template.page_name, changes["template_name"], exclude_id=template.id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A template with this name already exists"
            )

    for field, value in changes.items():
        if value is not None:
            setattr(template, field, value)

    db.commit()
    db.refresh(template)

    return {"template": template.to_dict()}


@router.delete("/{template_id}")
async def delete_template(
    template_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Delete a template."""
    template = _owned_template(db, template_id, current_user.email)
    db.delete(template)
    db.commit()
    return {"success": True}
