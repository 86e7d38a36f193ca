"""
User account endpoints
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from ..auth.rbac import CurrentUser, get_current_user
from ..database import get_db
from ..dependencies import get_email_sender, get_entitlement_resolver
from ..models import AccountRole, User, utcnow
from ..notifications import messages
from ..notifications.sender import EmailSender
from ..services.entitlements import EntitlementResolver, normalize_email
from ..services.rate_data import initialize_email_preferences

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["users"])


class RoleUpdate(BaseModel):
    """Self-selected role"""
    role: AccountRole


class PreferencesInit(BaseModel):
    """Email whose alert preferences are initialized"""
    user_email: Optional[EmailStr] = None


@router.post("/sync")
async def sync_user(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    sender: EmailSender = Depends(get_email_sender),
):
    """Create or refresh the caller's user row after login.

    The first login sends the account welcome email.
    """
    user = db.query(User).filter(User.email == current_user.email).first()
    created = user is None
    if created:
        user = User(email=current_user.email)
        db.add(user)

    user.first_name = current_user.first_name or user.first_name
    user.last_name = current_user.last_name or user.last_name
    user.last_login_at = utcnow()

    db.commit()
    db.refresh(user)

    if created:
        logger.info(f"Created user {user.email}")
        sender.send_best_effort(messages.welcome_first_login(user.email, user.first_name))

    return {"created": created, "user": user.to_dict()}


@router.get("/me")
async def get_profile(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
):
    """Profile, role and entitlement of the caller."""
    user = db.query(User).filter(User.email == current_user.email).first()
    return {
        "user": user.to_dict() if user else {"email": current_user.email, "role": AccountRole.USER.value},
        "isAdmin": resolver.is_admin(current_user.email),
    }


@router.get("/role")
async def get_role(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """The caller's account role."""
    user = db.query(User).filter(User.email == current_user.email).first()
    return {"role": user.role if user else AccountRole.USER.value}


@router.post("/role")
async def update_role(
    update: RoleUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Set the caller's account role (user or subscription_manager)."""
    user = db.query(User).filter(User.email == current_user.email).first()
    if user is None:
        user = User(email=current_user.email)
        db.add(user)

    user.role = update.role.value
    db.commit()

    logger.info(f"{current_user.email} set role to {user.role}")
    return {"success": True, "role": user.role}


@router.post("/initialize-email-preferences")
async def initialize_preferences(
    body: Optional[PreferencesInit] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Create default rate alert preferences (all states and categories).

    Callers may only initialize their own preferences.
    """
    if body and body.user_email and normalize_email(body.user_email) != current_user.email:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot initialize preferences for another user"
        )

    preferences, created = initialize_email_preferences(db, current_user.email)
    if not created:
        return {"success": True, "message": "Preferences already exist", "id": preferences.id}
    return {
        "success": True,
        "message": "Preferences initialized successfully",
        "id": preferences.id,
        "preferences": preferences.preferences,
    }
