"""SQLAlchemy models for the MediRate API."""
from .base import Base, as_naive_utc, utcnow
from .rate_data import (
    CodeDefinition,
    EmailPreferences,
    LegislativeBill,
    ProviderAlert,
    RateRecord,
    ServiceCategory,
    StatePlanAmendment,
)
from .subscription import (
    GrantStatus,
    Payment,
    Subscription,
    SubscriptionUsers,
    TransferredSubscription,
    WireTransferSubscription,
)
from .template import DashboardTemplate
from .usage import ExcelExportUsage
from .user import AccountRole, AdminUser, User
from .verification import EmailVerification, VerificationRequestLog

__all__ = [
    "Base",
    "utcnow",
    "as_naive_utc",
    "User",
    "AccountRole",
    "AdminUser",
    "Subscription",
    "Payment",
    "SubscriptionUsers",
    "WireTransferSubscription",
    "TransferredSubscription",
    "GrantStatus",
    "ExcelExportUsage",
    "DashboardTemplate",
    "EmailVerification",
    "VerificationRequestLog",
    "ProviderAlert",
    "LegislativeBill",
    "StatePlanAmendment",
    "RateRecord",
    "CodeDefinition",
    "ServiceCategory",
    "EmailPreferences",
]
