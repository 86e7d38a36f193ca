"""Plain-text bodies for transactional emails."""
from datetime import datetime
from typing import Optional

from .sender import NotificationRequest

SIGNATURE = "---\nMediRate\nhttps://www.medirate.net"


def welcome_subscriber(email: str, plan_name: Optional[str] = None) -> NotificationRequest:
    plan = f" to the {plan_name} plan" if plan_name else ""
    return NotificationRequest(
        recipient_email=email,
        subject="Welcome to MediRate",
        message=(
            f"Thank you for subscribing{plan}.\n\n"
            "Your account now has full access to Medicaid rate data, rate developments "
            "and the document library. Sign in at any time to get started.\n\n"
            f"{SIGNATURE}"
        ),
        category="subscription_welcome",
    )


def welcome_first_login(email: str, first_name: Optional[str] = None) -> NotificationRequest:
    greeting = f"Hi {first_name}," if first_name else "Hi,"
    return NotificationRequest(
        recipient_email=email,
        recipient_name=first_name,
        subject="Your MediRate account is ready",
        message=(
            f"{greeting}\n\n"
            "Your MediRate account has been created. Choose a subscription plan to unlock "
            "rate search, historical rates and exports.\n\n"
            f"{SIGNATURE}"
        ),
        category="account_welcome",
    )


def sub_user_added(sub_user_email: str, primary_email: str) -> NotificationRequest:
    return NotificationRequest(
        recipient_email=sub_user_email,
        subject="You have been added to a MediRate subscription",
        message=(
            f"{primary_email} has added you to their MediRate subscription.\n\n"
            "Sign in with this email address to access the portal.\n\n"
            f"{SIGNATURE}"
        ),
        category="sub_user_added",
    )


def sub_user_removed(sub_user_email: str, primary_email: str) -> NotificationRequest:
    return NotificationRequest(
        recipient_email=sub_user_email,
        subject="Your MediRate access has changed",
        message=(
            f"{primary_email} has removed you from their MediRate subscription. "
            "Your access through that subscription has ended.\n\n"
            f"{SIGNATURE}"
        ),
        category="sub_user_removed",
    )


def verification_code(email: str, code: str, ttl_minutes: int) -> NotificationRequest:
    return NotificationRequest(
        recipient_email=email,
        subject="Your MediRate verification code",
        message=(
            f"Your verification code is {code}.\n\n"
            f"It expires in {ttl_minutes} minutes. If you did not request it, ignore this email.\n\n"
            f"{SIGNATURE}"
        ),
        category="verification_code",
    )


def subscription_expiring(email: str, kind: str, end_date: datetime, days_remaining: int) -> NotificationRequest:
    return NotificationRequest(
        recipient_email=email,
        subject=f"Your MediRate subscription expires in {days_remaining} day(s)",
        message=(
            f"Your {kind} subscription ends on {end_date.strftime('%Y-%m-%d')}.\n\n"
            "Contact us to renew and keep uninterrupted access.\n\n"
            f"{SIGNATURE}"
        ),
        category="expiration_warning",
        metadata={"days_remaining": days_remaining, "kind": kind},
    )


def subscription_expired(email: str, kind: str, end_date: datetime) -> NotificationRequest:
    return NotificationRequest(
        recipient_email=email,
        subject="Your MediRate subscription has expired",
        message=(
            f"Your {kind} subscription ended on {end_date.strftime('%Y-%m-%d')} and access "
            "through it has stopped.\n\n"
            "Contact us to renew.\n\n"
            f"{SIGNATURE}"
        ),
        category="expiration_expired",
        metadata={"kind": kind},
    )


def contact_form(name: str, email: str, message: str, recipient: str) -> NotificationRequest:
    return NotificationRequest(
        recipient_email=recipient,
        subject=f"Contact form: {name}",
        message=f"From: {name} <{email}>\n\n{message}",
        category="contact_form",
        reply_to=email,
    )
