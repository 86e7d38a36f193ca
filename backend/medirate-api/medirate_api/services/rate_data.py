"""Rate developments, recent rate changes and modifier lookups."""
import logging
import re
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models import (
    CodeDefinition,
    EmailPreferences,
    LegislativeBill,
    ProviderAlert,
    RateRecord,
    ServiceCategory,
    StatePlanAmendment,
)
from .entitlements import normalize_email

logger = logging.getLogger(__name__)

# Spreadsheet serial dates count days from 1899-12-30
EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_SERIAL_RANGE = (20000, 90000)
DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y")

SERVICE_KEY_FIELDS = (
    "state_name",
    "service_category",
    "service_code",
    "service_description",
    "program",
    "location_region",
    "provider_type",
    "duration_unit",
    "modifier_1",
    "modifier_1_details",
    "modifier_2",
    "modifier_2_details",
    "modifier_3",
    "modifier_3_details",
    "modifier_4",
    "modifier_4_details",
)

MODIFIER_PATTERN = re.compile(r"\b([A-Z]{2}|[A-Z]\d|\d[A-Z]|\d{2})\b")
NOT_MODIFIERS = frozenset({
    "OF", "IN", "ON", "TO", "BY", "AN", "AS", "AT", "OR", "IF",
    "IT", "IS", "BE", "US", "NO", "UP", "PT", "PA", "FC",
})

ALL_STATES = [
    "ALABAMA", "ALASKA", "ARIZONA", "ARKANSAS", "CALIFORNIA", "COLORADO",
    "CONNECTICUT", "DELAWARE", "FLORIDA", "GEORGIA", "HAWAII", "IDAHO",
    "ILLINOIS", "INDIANA", "IOWA", "KANSAS", "KENTUCKY", "LOUISIANA",
    "MAINE", "MARYLAND", "MASSACHUSETTS", "MICHIGAN", "MINNESOTA",
    "MISSISSIPPI", "MISSOURI", "MONTANA", "NEBRASKA", "NEVADA",
    "NEW HAMPSHIRE", "NEW JERSEY", "NEW MEXICO", "NEW YORK",
    "NORTH CAROLINA", "NORTH DAKOTA", "OHIO", "OKLAHOMA", "OREGON",
    "PENNSYLVANIA", "RHODE ISLAND", "SOUTH CAROLINA", "SOUTH DAKOTA",
    "TENNESSEE", "TEXAS", "UTAH", "VERMONT", "VIRGINIA", "WASHINGTON",
    "WEST VIRGINIA", "WISCONSIN", "WYOMING",
    "AMERICAN SAMOA", "U.S. VIRGIN ISLANDS", "NORTHERN MARIANA ISLANDS",
]


class RateDataError(ValueError):
    """Invalid change to a rate development record."""


def parse_date(value: Any) -> Optional[date]:
    """Read a date from ISO or US text, or a spreadsheet serial number.

    Raises:
        RateDataError: If the value is not a recognizable date
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    serial = None
    if isinstance(value, int) and not isinstance(value, bool):
        serial = value
    elif isinstance(value, str) and value.strip().isdigit():
        serial = int(value.strip())
    if serial is not None:
        low, high = EXCEL_SERIAL_RANGE
        if low < serial < high:
            return EXCEL_EPOCH + timedelta(days=serial)
        raise RateDataError(f"Unrecognized date: {value!r}")

    if isinstance(value, str):
        text = value.strip()
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text[:10] if fmt == "%Y-%m-%d" else text, fmt).date()
            except ValueError:
                continue
    raise RateDataError(f"Unrecognized date: {value!r}")


def parse_rate(text: Optional[str]) -> float:
    """Numeric value of a published rate such as "$1,204.50"; 0.0 when blank."""
    cleaned = re.sub(r"[$,]", "", text or "").strip()
    try:
        return float(cleaned) if cleaned else 0.0
    except ValueError:
        return 0.0


def update_record(record, changes: Dict[str, Any], date_fields: Iterable[str] = ()) -> None:
    """Apply admin edits to a provider alert, bill or state plan amendment."""
    date_fields = set(date_fields)
    for field, value in changes.items():
        if field not in record.EDITABLE:
            raise RateDataError(f"Field cannot be changed: {field}")
        setattr(record, field, parse_date(value) if field in date_fields else value)


def rate_developments(db: Session) -> dict:
    alerts = (
        db.query(ProviderAlert)
        .order_by(ProviderAlert.announcement_date.desc().nullslast(), ProviderAlert.id.desc())
        .all()
    )
    bills = db.query(LegislativeBill).order_by(LegislativeBill.id).all()
    amendments = db.query(StatePlanAmendment).order_by(StatePlanAmendment.id).all()

    logger.info(
        f"Loaded rate developments: {len(alerts)} alerts, {len(bills)} bills, {len(amendments)} amendments"
    )
    return {
        "providerAlerts": [a.to_dict() for a in alerts],
        "bills": [b.to_dict() for b in bills],
        "statePlanAmendments": [s.to_dict() for s in amendments],
    }


def _change_entry(latest: RateRecord, previous: RateRecord, count: int, is_change: bool,
                  percentage_change: float) -> dict:
    entry = {
        "id": f"{latest.state_name}-{latest.service_code}-{latest.rate_effective_date.isoformat()}",
        "state": latest.state_name,
        "serviceCategory": latest.service_category,
        "serviceCode": latest.service_code,
        "serviceDescription": latest.service_description,
        "program": latest.program,
        "locationRegion": latest.location_region,
        "providerType": latest.provider_type,
        "durationUnit": latest.duration_unit,
    }
    for n in range(1, 5):
        entry[f"modifier{n}"] = getattr(latest, f"modifier_{n}")
        entry[f"modifier{n}Details"] = getattr(latest, f"modifier_{n}_details")
    entry.update({
        "oldRate": previous.rate,
        "newRate": latest.rate,
        "oldRateNumeric": parse_rate(previous.rate),
        "newRateNumeric": parse_rate(latest.rate),
        "percentageChange": percentage_change,
        "effectiveDate": latest.rate_effective_date.isoformat(),
        "previousDate": previous.rate_effective_date.isoformat(),
        "changeCount": count,
        "isChange": is_change,
    })
    return entry


def recent_rate_changes(db: Session, today: date, days: int = 30, limit: int = 100,
                        scan_limit: int = 1000) -> dict:
    """Latest rate per service over the last `days`, flagging services whose rate moved.

    Records are grouped by every service attribute except rate and date. A
    group with two or more differing latest rates is a change; the average
    percentage change covers changes only.
    """
    start = today - timedelta(days=days)
    rows = (
        db.query(RateRecord)
        .filter(RateRecord.rate_effective_date >= start, RateRecord.rate_effective_date <= today)
        .order_by(RateRecord.rate_effective_date.desc(), RateRecord.id.desc())
        .limit(scan_limit)
        .all()
    )

    groups: Dict[Tuple, List[RateRecord]] = {}
    for row in rows:
        groups.setdefault(tuple(getattr(row, f) for f in SERVICE_KEY_FIELDS), []).append(row)

    changes = []
    total_percentage = 0.0
    change_count = 0
    for records in groups.values():
        records.sort(key=lambda r: r.rate_effective_date)
        latest = records[-1]
        previous = records[-2] if len(records) >= 2 else latest
        latest_rate, previous_rate = parse_rate(latest.rate), parse_rate(previous.rate)

        if previous is not latest and latest_rate != previous_rate:
            percentage = (latest_rate - previous_rate) / previous_rate * 100 if previous_rate > 0 else 0.0
            total_percentage += percentage
            change_count += 1
            changes.append(_change_entry(latest, previous, len(records), True, percentage))
        else:
            changes.append(_change_entry(latest, latest, len(records), False, 0.0))

    changes.sort(key=lambda c: c["effectiveDate"], reverse=True)
    limited = changes[:limit]

    return {
        "changes": limited,
        "totalChanges": len(changes),
        "dateRange": {"start": start.isoformat(), "end": today.isoformat()},
        "summary": {
            "totalStates": len({c["state"] for c in limited}),
            "totalServiceCategories": len({c["serviceCategory"] for c in limited}),
            "averagePercentageChange": round(total_percentage / change_count, 2) if change_count else 0,
        },
    }


def extract_modifiers(descriptions: Iterable[Optional[str]]) -> List[dict]:
    """Two-character modifier codes mentioned in service descriptions, with counts."""
    counts = Counter()
    for description in descriptions:
        if not description:
            continue
        for token in MODIFIER_PATTERN.findall(description):
            code = token.upper()
            if code not in NOT_MODIFIERS:
                counts[code] += 1

    return [
        {"modifier_code": code, "modifier_details": "Derived from code definitions", "usage_count": counts[code]}
        for code in sorted(counts)
    ]


def list_modifiers(db: Session) -> List[dict]:
    descriptions = (
        description
        for (description,) in db.query(CodeDefinition.service_description).yield_per(1000)
    )
    return extract_modifiers(descriptions)


def initialize_email_preferences(db: Session, email: str) -> Tuple[EmailPreferences, bool]:
    """Create alert preferences covering every state and service category.

    Existing preferences are returned untouched.

    Returns:
        (preferences, created)
    """
    email = normalize_email(email)
    existing = db.query(EmailPreferences).filter(EmailPreferences.user_email == email).first()
    if existing:
        return existing, False

    categories = [c.name for c in db.query(ServiceCategory).order_by(ServiceCategory.name)]
    preferences = EmailPreferences(
        user_email=email,
        preferences={"states": list(ALL_STATES), "categories": categories},
    )
    db.add(preferences)
    db.commit()
    db.refresh(preferences)
    logger.info(f"Initialized email preferences for {email} with {len(categories)} categories")
    return preferences, True
