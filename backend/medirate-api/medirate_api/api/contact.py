"""
Public contact form
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field

from ..config.loader import Config, get_config
from ..dependencies import get_email_sender
from ..notifications import messages
from ..notifications.sender import EmailDeliveryError, EmailSender

router = APIRouter(prefix="/api/v1/contact", tags=["contact"])


class ContactMessage(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    message: str = Field(..., min_length=1, max_length=10000)


@router.post("")
async def send_contact_message(
    body: ContactMessage,
    config: Config = Depends(get_config),
    sender: EmailSender = Depends(get_email_sender),
):
    """Forward a contact-form message to the support inbox."""
    notification = messages.contact_form(
        body.name.strip(), body.email, body.message.strip(), config.notification.contact_recipient
    )
    try:
        sender.send_smtp(notification)
    except EmailDeliveryError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to send message: {e}"
        )
    return {"success": True}
