"""
Email verification endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from ..config.loader import Config, get_config
from ..database import get_db
from ..dependencies import get_email_sender
from ..notifications.sender import EmailDeliveryError, EmailSender
from ..services.verification import ThrottledError, VerificationError, VerificationService

router = APIRouter(prefix="/api/v1/email-verification", tags=["email-verification"])


class CodeRequest(BaseModel):
    email: EmailStr


class CodeCheck(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _service(db: Session, config: Config, sender: EmailSender) -> VerificationService:
    return VerificationService(db, config.verification, sender)


@router.post("/request")
async def request_verification_code(
    body: CodeRequest,
    request: Request,
    db: Session = Depends(get_db),
    config: Config = Depends(get_config),
    sender: EmailSender = Depends(get_email_sender),
):
    """Send a verification code to an email address."""
    try:
        expires_at = _service(db, config, sender).request_code(body.email, client_ip(request))
    except ThrottledError as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(e),
            headers={"Retry-After": str(e.retry_after)},
        )
    except EmailDeliveryError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to send verification email: {e}"
        )

    return {"success": True, "expiresAt": expires_at.isoformat()}


@router.post("/verify")
async def verify_code(
    body: CodeCheck,
    db: Session = Depends(get_db),
    config: Config = Depends(get_config),
    sender: EmailSender = Depends(get_email_sender),
):
    """Check a verification code."""
    try:
        _service(db, config, sender).verify(body.email, body.code)
    except VerificationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {"success": True, "verified": True}
