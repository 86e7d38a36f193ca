"""Excel export usage counter model."""
from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from .base import Base, isoformat, utcnow


class ExcelExportUsage(Base):
    """Rows exported by a primary subscription in its current billing period."""

    __tablename__ = "excel_export_usage"
    __table_args__ = (
        UniqueConstraint("primary_user_email", "subscription_type", name="uq_export_usage_owner"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    primary_user_email = Column(String(255), nullable=False, index=True)
    subscription_type = Column(String(20), nullable=False)  # stripe, wire_transfer
    rows_used = Column(Integer, nullable=False, default=0)
    rows_limit = Column(Integer, nullable=False)
    current_period_start = Column(DateTime, nullable=False)
    current_period_end = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<ExcelExportUsage {self.primary_user_email} {self.rows_used}/{self.rows_limit}>"

    def to_dict(self) -> dict:
        return {
            "primaryUserEmail": self.primary_user_email,
            "subscriptionType": self.subscription_type,
            "rowsUsed": self.rows_used,
            "rowsLimit": self.rows_limit,
            "currentPeriodStart": isoformat(self.current_period_start),
            "currentPeriodEnd": isoformat(self.current_period_end),
        }
