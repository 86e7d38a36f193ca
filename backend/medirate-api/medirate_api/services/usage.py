"""Excel export usage tracking.

Each primary subscription may export a fixed number of rows per billing
period. Sub users draw from their primary's allowance.
"""
import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models import ExcelExportUsage, User, utcnow
from .entitlements import EntitlementResolver, normalize_email
from .stripe_client import subscription_period

logger = logging.getLogger(__name__)

DEFAULT_ROWS_LIMIT = 20000

SUBSCRIPTION_STRIPE = "stripe"
SUBSCRIPTION_WIRE_TRANSFER = "wire_transfer"

END_OF_DAY = {"hour": 23, "minute": 59, "second": 59, "microsecond": 999999}


class UsageError(ValueError):
    """Invalid export request."""


@dataclass
class BillingPeriod:
    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end


def _clamp_day(year: int, month: int, day: int) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(day, last_day))


def _shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def calendar_month_period(now: datetime) -> BillingPeriod:
    last_day = calendar.monthrange(now.year, now.month)[1]
    return BillingPeriod(
        start=datetime(now.year, now.month, 1),
        end=datetime(now.year, now.month, last_day, **END_OF_DAY),
    )


def wire_transfer_period(start_date: datetime, end_date: Optional[datetime], now: datetime) -> BillingPeriod:
    """Monthly cycle anchored on the subscription start's day of month.

    The day is clamped in short months, the period never starts before the
    subscription does and never ends after its end date.
    """
    if start_date > now:
        return calendar_month_period(now)

    if end_date is not None and end_date < now:
        return BillingPeriod(start=end_date, end=end_date)

    anniversary = start_date.day
    year, month = now.year, now.month
    if now.day < min(anniversary, calendar.monthrange(year, month)[1]):
        year, month = _shift_month(year, month, -1)

    period_start = _clamp_day(year, month, anniversary)
    subscription_start = start_date.replace(hour=0, minute=0, second=0, microsecond=0)
    if period_start < subscription_start:
        period_start = subscription_start

    next_year, next_month = _shift_month(year, month, 1)
    period_end = _clamp_day(next_year, next_month, anniversary).replace(**END_OF_DAY)

    if end_date is not None:
        subscription_end = end_date.replace(**END_OF_DAY)
        if period_end > subscription_end:
            period_end = subscription_end

    return BillingPeriod(start=period_start, end=period_end)


@dataclass
class UsageStatus:
    """Export allowance for the caller's subscription."""
    primary_user_email: str
    subscription_type: str
    user_role: str
    rows_used: int
    rows_limit: int
    period: BillingPeriod

    @property
    def rows_remaining(self) -> int:
        return max(0, self.rows_limit - self.rows_used)

    @property
    def can_export(self) -> bool:
        return self.rows_remaining > 0

    def to_dict(self) -> dict:
        return {
            "rowsUsed": self.rows_used,
            "rowsLimit": self.rows_limit,
            "rowsRemaining": self.rows_remaining,
            "currentPeriodStart": self.period.start.isoformat(),
            "currentPeriodEnd": self.period.end.isoformat(),
            "canExport": self.can_export,
            "primaryUserEmail": self.primary_user_email,
            "userRole": self.user_role,
        }


class UsageTracker:
    """Reads and reserves export rows against the current billing period."""

    def __init__(self, db: Session, resolver: EntitlementResolver, rows_limit: int = DEFAULT_ROWS_LIMIT):
        self.db = db
        self.resolver = resolver
        self.rows_limit = rows_limit

    @property
    def now(self) -> datetime:
        return self.resolver.now

    def resolve_subscription_owner(self, email: str) -> Tuple[str, str]:
        """Return (primary_email, subscription_type) whose allowance the email uses.

        Stripe takes priority over wire transfer.
        """
        email = normalize_email(email)
        primary = self.resolver.find_primary_user(email) or email

        if self.resolver.find_active_subscription(primary):
            return primary, SUBSCRIPTION_STRIPE
        if self.resolver.find_wire_transfer(primary):
            return primary, SUBSCRIPTION_WIRE_TRANSFER
        return primary, SUBSCRIPTION_STRIPE

    def billing_period(self, primary_email: str, subscription_type: str) -> BillingPeriod:
        if subscription_type == SUBSCRIPTION_WIRE_TRANSFER:
            wire = self.resolver.find_wire_transfer(primary_email)
            if wire:
                return wire_transfer_period(wire.subscription_start_date, wire.subscription_end_date, self.now)
        else:
            subscription = self.resolver.find_active_subscription(primary_email)
            if subscription:
                start, end = subscription_period(subscription)
                if start and end:
                    return BillingPeriod(start=start, end=end)
        return calendar_month_period(self.now)

    def user_role(self, email: str, primary_email: str) -> str:
        user = self.db.query(User).filter(User.email == normalize_email(email)).first()
        if user and user.is_subscription_manager:
            return "subscription_manager"
        return "primary_user" if normalize_email(email) == primary_email else "sub_user"

    def _sync_record(self, primary_email: str, subscription_type: str, period: BillingPeriod) -> ExcelExportUsage:
        """Fetch the usage row, creating or rolling it to the current period."""
        record = (
            self.db.query(ExcelExportUsage)
            .filter(
                ExcelExportUsage.primary_user_email == primary_email,
                ExcelExportUsage.subscription_type == subscription_type,
            )
            .first()
        )

        if record is None:
            record = ExcelExportUsage(
                primary_user_email=primary_email,
                subscription_type=subscription_type,
                rows_used=0,
                rows_limit=self.rows_limit,
                current_period_start=period.start,
                current_period_end=period.end,
            )
            self.db.add(record)
            logger.info(f"Created export usage record for {primary_email} ({subscription_type})")

        elif (
            record.current_period_start is None
            or record.current_period_end is None
            or record.current_period_start >= record.current_period_end
        ):
            record.rows_used = 0
            record.current_period_start = period.start
            record.current_period_end = period.end
            logger.warning(f"Reset export usage record with invalid dates for {primary_email}")

        elif (
            self.now > record.current_period_end + timedelta(seconds=1)
            # Wire-transfer periods end on the anniversary day the next one starts
            or period.start >= record.current_period_end - timedelta(days=1)
        ):
            logger.info(
                f"Billing period ended for {primary_email}; resetting {record.rows_used} exported rows"
            )
            record.rows_used = 0
            record.current_period_start = period.start
            record.current_period_end = period.end

        elif (
            abs(record.current_period_start - period.start) > timedelta(days=1)
            or abs(record.current_period_end - period.end) > timedelta(days=1)
        ):
            # Billing cycle moved (plan change, renewal); keep the count
            record.current_period_start = period.start
            record.current_period_end = period.end

        record.rows_limit = self.rows_limit
        self.db.commit()
        self.db.refresh(record)
        return record

    def current_usage(self, email: str) -> UsageStatus:
        primary_email, subscription_type = self.resolve_subscription_owner(email)
        period = self.billing_period(primary_email, subscription_type)
        role = self.user_role(email, primary_email)

        if period.is_empty:
            return UsageStatus(primary_email, subscription_type, role, self.rows_limit, self.rows_limit, period)

        record = self._sync_record(primary_email, subscription_type, period)
        return UsageStatus(
            primary_user_email=primary_email,
            subscription_type=subscription_type,
            user_role=role,
            rows_used=record.rows_used,
            rows_limit=record.rows_limit,
            period=BillingPeriod(record.current_period_start, record.current_period_end),
        )

    def reserve(self, email: str, row_count: int) -> Tuple[bool, UsageStatus, str]:
        """Reserve rows for an export.

        Returns:
            (reserved, usage_after, message)

        Raises:
            UsageError: If row_count is not a positive number within the limit
        """
        if isinstance(row_count, bool) or not isinstance(row_count, int):
            raise UsageError("rowCount must be a whole number")
        if row_count <= 0:
            raise UsageError("rowCount must be greater than 0")
        if row_count > self.rows_limit:
            raise UsageError(f"rowCount cannot exceed {self.rows_limit}")

        usage = self.current_usage(email)
        if row_count > usage.rows_remaining:
            return False, usage, (
                f"Export would exceed your limit: {row_count} rows requested, "
                f"{usage.rows_remaining} remaining this billing period"
            )

        # Guarded increment so concurrent exports cannot overshoot the limit
        result = self.db.execute(
            update(ExcelExportUsage)
            .where(
                ExcelExportUsage.primary_user_email == usage.primary_user_email,
                ExcelExportUsage.subscription_type == usage.subscription_type,
                ExcelExportUsage.rows_used + row_count <= ExcelExportUsage.rows_limit,
            )
            .values(rows_used=ExcelExportUsage.rows_used + row_count, updated_at=utcnow())
        )
        self.db.commit()

        if result.rowcount == 0:
            usage = self.current_usage(email)
            return False, usage, "Export limit reached by a concurrent export"

        usage = self.current_usage(email)
        logger.info(f"Reserved {row_count} export rows for {usage.primary_user_email}")
        return True, usage, f"Reserved {row_count} rows; {usage.rows_remaining} remaining this billing period"
