"""Rate and regulatory data shown to subscribers.

Reference: rate developments (provider alerts, legislative bills, state plan
amendments), published fee-schedule rates, procedure code definitions and
per-user alert email preferences.
"""
from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Integer, String, Text

from .base import Base, isoformat, utcnow


def _date(value):
    return value.isoformat() if value else None


class ProviderAlert(Base):
    """Payer or state agency announcement affecting providers."""

    __tablename__ = "provider_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    state = Column(String(100), nullable=True, index=True)
    payer = Column(String(255), nullable=True)
    subject = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    announcement_date = Column(Date, nullable=True, index=True)
    link = Column(Text, nullable=True)
    service_lines_impacted = Column(Text, nullable=True)
    is_new = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    EDITABLE = ("state", "payer", "subject", "summary", "announcement_date", "link",
                "service_lines_impacted", "is_new")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "state": self.state,
            "payer": self.payer,
            "subject": self.subject,
            "summary": self.summary,
            "announcement_date": _date(self.announcement_date),
            "link": self.link,
            "service_lines_impacted": self.service_lines_impacted,
            "is_new": self.is_new,
            "created_at": isoformat(self.created_at),
        }


class LegislativeBill(Base):
    """State bill tracked for Medicaid rate impact. Bills are keyed by their URL."""

    __tablename__ = "bill_track_50"

    id = Column(Integer, primary_key=True, autoincrement=True)
    state = Column(String(100), nullable=True, index=True)
    bill_number = Column(String(100), nullable=True)
    name = Column(Text, nullable=True)
    last_action = Column(Text, nullable=True)
    action_date = Column(Date, nullable=True)
    sponsor_list = Column(Text, nullable=True)
    bill_progress = Column(String(255), nullable=True)
    url = Column(String(1024), nullable=False, unique=True)
    ai_summary = Column(Text, nullable=True)
    service_lines_impacted = Column(Text, nullable=True)
    service_lines_impacted_1 = Column(Text, nullable=True)
    service_lines_impacted_2 = Column(Text, nullable=True)
    service_lines_impacted_3 = Column(Text, nullable=True)
    is_new = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    EDITABLE = ("state", "bill_number", "name", "last_action", "action_date", "sponsor_list",
                "bill_progress", "ai_summary", "service_lines_impacted", "service_lines_impacted_1",
                "service_lines_impacted_2", "service_lines_impacted_3", "is_new")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "state": self.state,
            "bill_number": self.bill_number,
            "name": self.name,
            "last_action": self.last_action,
            "action_date": _date(self.action_date),
            "sponsor_list": self.sponsor_list,
            "bill_progress": self.bill_progress,
            "url": self.url,
            "ai_summary": self.ai_summary,
            "service_lines_impacted": self.service_lines_impacted,
            "service_lines_impacted_1": self.service_lines_impacted_1,
            "service_lines_impacted_2": self.service_lines_impacted_2,
            "service_lines_impacted_3": self.service_lines_impacted_3,
            "is_new": self.is_new,
            "created_at": isoformat(self.created_at),
        }


class StatePlanAmendment(Base):
    """Medicaid state plan amendment (SPA) filed with CMS."""

    __tablename__ = "state_plan_amendments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    state = Column(String(100), nullable=True, index=True)
    transmittal_number = Column(String(100), nullable=True)
    subject = Column(Text, nullable=True)
    effective_date = Column(Date, nullable=True)
    approval_date = Column(Date, nullable=True)
    link = Column(Text, nullable=True)
    service_lines_impacted = Column(Text, nullable=True)
    is_new = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    EDITABLE = ("state", "transmittal_number", "subject", "effective_date", "approval_date", "link",
                "service_lines_impacted", "is_new")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "state": self.state,
            "transmittal_number": self.transmittal_number,
            "subject": self.subject,
            "effective_date": _date(self.effective_date),
            "approval_date": _date(self.approval_date),
            "link": self.link,
            "service_lines_impacted": self.service_lines_impacted,
            "is_new": self.is_new,
            "created_at": isoformat(self.created_at),
        }


class RateRecord(Base):
    """One published Medicaid rate for a service as of its effective date.

    `rate` keeps the published text (for example "$1,204.50").
    """

    __tablename__ = "rate_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    state_name = Column(String(100), nullable=False, index=True)
    service_category = Column(String(255), nullable=True)
    service_code = Column(String(50), nullable=True, index=True)
    service_description = Column(Text, nullable=True)
    program = Column(String(255), nullable=True)
    location_region = Column(String(255), nullable=True)
    provider_type = Column(String(255), nullable=True)
    duration_unit = Column(String(100), nullable=True)
    modifier_1 = Column(String(10), nullable=True)
    modifier_1_details = Column(Text, nullable=True)
    modifier_2 = Column(String(10), nullable=True)
    modifier_2_details = Column(Text, nullable=True)
    modifier_3 = Column(String(10), nullable=True)
    modifier_3_details = Column(Text, nullable=True)
    modifier_4 = Column(String(10), nullable=True)
    modifier_4_details = Column(Text, nullable=True)
    rate = Column(String(50), nullable=True)
    rate_effective_date = Column(Date, nullable=False, index=True)


class CodeDefinition(Base):
    """HCPCS/CPT procedure code and its description."""

    __tablename__ = "code_definitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hcpcs_code_cpt_code = Column(String(50), nullable=True, index=True)
    service_code = Column(String(50), nullable=True)
    service_description = Column(Text, nullable=True)


class ServiceCategory(Base):
    __tablename__ = "service_category_list"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column("categories", String(255), nullable=False, unique=True)


class EmailPreferences(Base):
    """States and service categories a user receives rate alert emails for."""

    __tablename__ = "user_email_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_email = Column(String(255), nullable=False, unique=True, index=True)
    preferences = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_email": self.user_email,
            "preferences": self.preferences,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
