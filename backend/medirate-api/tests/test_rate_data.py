from datetime import date, timedelta

import pytest

from medirate_api.models import (
    CodeDefinition,
    EmailPreferences,
    LegislativeBill,
    ProviderAlert,
    RateRecord,
    ServiceCategory,
    StatePlanAmendment,
    utcnow,
)
from medirate_api.services.rate_data import (
    ALL_STATES,
    RateDataError,
    extract_modifiers,
    initialize_email_preferences,
    parse_date,
    parse_rate,
    recent_rate_changes,
)

TODAY = date(2024, 5, 15)


def add_rate(db, effective, rate, state="TEXAS", code="T1019", category="Personal Care", **fields):
    db.add(RateRecord(
        state_name=state,
        service_category=category,
        service_code=code,
        service_description="Personal care services, per 15 minutes",
        rate=rate,
        rate_effective_date=effective,
        **fields,
    ))
    db.commit()


@pytest.mark.parametrize("value, expected", [
    ("2024-03-01", date(2024, 3, 1)),
    ("2024-03-01T08:30:00", date(2024, 3, 1)),
    ("03/01/2024", date(2024, 3, 1)),
    (45352, date(2024, 3, 1)),
    ("45352", date(2024, 3, 1)),
    (None, None),
    ("", None),
])
def test_parse_date(value, expected):
    assert parse_date(value) == expected


@pytest.mark.parametrize("value", ["next spring", 123, "13/45/2024"])
def test_parse_date_rejects(value):
    with pytest.raises(RateDataError):
        parse_date(value)


def test_parse_rate():
    assert parse_rate("$1,204.50") == 1204.5
    assert parse_rate(None) == 0.0
    assert parse_rate("N/A") == 0.0


def test_recent_rate_changes(db):
    add_rate(db, date(2024, 4, 20), "$10.00")
    add_rate(db, date(2024, 5, 10), "$12.50")
    add_rate(db, date(2024, 4, 25), "$5.00", modifier_1="U1", modifier_1_details="Rural")
    add_rate(db, date(2024, 5, 5), "$5.00", modifier_1="U1", modifier_1_details="Rural")
    add_rate(db, date(2024, 5, 1), "$80.00", state="OHIO", code="99213", category="Physician")
    add_rate(db, date(2024, 1, 2), "$1.00", state="OHIO", code="OLD")

    result = recent_rate_changes(db, TODAY, days=30)

    assert result["totalChanges"] == 3
    assert result["dateRange"] == {"start": "2024-04-15", "end": "2024-05-15"}
    changed, unchanged, single = result["changes"]

    assert changed["isChange"] is True
    assert changed["oldRate"] == "$10.00"
    assert changed["newRateNumeric"] == 12.5
    assert changed["percentageChange"] == 25.0
    assert changed["previousDate"] == "2024-04-20"
    assert changed["id"] == "TEXAS-T1019-2024-05-10"

    assert unchanged["isChange"] is False
    assert unchanged["modifier1"] == "U1"
    assert unchanged["changeCount"] == 2
    assert unchanged["previousDate"] == unchanged["effectiveDate"] == "2024-05-05"

    assert single["state"] == "OHIO"
    assert single["changeCount"] == 1

    assert result["summary"] == {"totalStates": 2, "totalServiceCategories": 2, "averagePercentageChange": 25.0}


def test_recent_rate_changes_limit_keeps_total(db):
    add_rate(db, date(2024, 5, 10), "$12.50")
    add_rate(db, date(2024, 5, 1), "$80.00", state="OHIO", code="99213")

    result = recent_rate_changes(db, TODAY, limit=1)

    assert len(result["changes"]) == 1
    assert result["totalChanges"] == 2
    assert result["summary"]["totalStates"] == 1


def test_rate_change_from_zero_has_no_percentage(db):
    add_rate(db, date(2024, 5, 1), "$0.00")
    add_rate(db, date(2024, 5, 8), "$9.00")

    change = recent_rate_changes(db, TODAY)["changes"][0]

    assert change["isChange"] is True
    assert change["percentageChange"] == 0.0


def test_no_recent_rates(db):
    result = recent_rate_changes(db, TODAY)

    assert result["changes"] == []
    assert result["summary"] == {"totalStates": 0, "totalServiceCategories": 0, "averagePercentageChange": 0}


def test_extract_modifiers():
    modifiers = extract_modifiers([
        "Office visit with modifier 25 and 59",
        "Home health TC component OF care",
        None,
        "Telehealth GT, 25",
    ])

    assert [m["modifier_code"] for m in modifiers] == ["25", "59", "GT", "TC"]
    assert modifiers[0]["usage_count"] == 2


def test_initialize_email_preferences(db):
    db.add_all([ServiceCategory(name="Physician"), ServiceCategory(name="Behavioral Health")])
    db.commit()

    preferences, created = initialize_email_preferences(db, "User@Example.com")

    assert created is True
    assert preferences.user_email == "user@example.com"
    assert preferences.preferences["states"] == ALL_STATES
    assert preferences.preferences["categories"] == ["Behavioral Health", "Physician"]

    again, created = initialize_email_preferences(db, "user@example.com")
    assert created is False
    assert again.id == preferences.id


@pytest.fixture
def subscriber_headers(auth_headers, stripe_client):
    stripe_client.add_subscription("paid@example.com")
    return auth_headers("paid@example.com")


@pytest.fixture
def developments(db):
    db.add_all([
        ProviderAlert(state="TEXAS", subject="Older alert", announcement_date=date(2024, 1, 5)),
        ProviderAlert(state="OHIO", subject="Undated alert"),
        ProviderAlert(state="OHIO", subject="Fee schedule update", announcement_date=date(2024, 4, 2)),
        LegislativeBill(state="TEXAS", bill_number="HB 12", url="https://bills.test/tx/hb12"),
        StatePlanAmendment(state="OHIO", transmittal_number="24-0001", subject="Nursing facility rates"),
    ])
    db.commit()


def test_rate_developments_endpoint(client, developments, subscriber_headers):
    response = client.get("/api/v1/rate-developments/data", headers=subscriber_headers)

    assert response.status_code == 200
    body = response.json()
    assert [a["subject"] for a in body["providerAlerts"]] == ["Fee schedule update", "Older alert", "Undated alert"]
    assert body["bills"][0]["bill_number"] == "HB 12"
    assert body["statePlanAmendments"][0]["transmittal_number"] == "24-0001"


def test_rate_developments_requires_access(client, developments, auth_headers):
    response = client.get("/api/v1/rate-developments/data", headers=auth_headers("nobody@example.com"))

    assert response.status_code == 403
    assert response.json()["error"] == "An active subscription is required"


def test_admin_deletes_provider_alert(client, db, developments, auth_headers, admin_email):
    alert = db.query(ProviderAlert).filter(ProviderAlert.subject == "Older alert").one()

    response = client.delete(f"/api/v1/rate-developments/provider-alerts/{alert.id}", headers=auth_headers(admin_email))

    assert response.status_code == 200
    db.expire_all()
    assert db.query(ProviderAlert).count() == 2


def test_delete_missing_provider_alert(client, auth_headers, admin_email):
    response = client.delete("/api/v1/rate-developments/provider-alerts/999", headers=auth_headers(admin_email))

    assert response.status_code == 404
    assert response.json()["error"] == "Provider alert not found"


def test_subscriber_cannot_delete(client, db, developments, subscriber_headers):
    alert = db.query(ProviderAlert).first()

    response = client.delete(f"/api/v1/rate-developments/provider-alerts/{alert.id}", headers=subscriber_headers)

    assert response.status_code == 403


def test_admin_updates_and_deletes_bill(client, db, developments, auth_headers, admin_email):
    headers = auth_headers(admin_email)
    params = {"url": "https://bills.test/tx/hb12"}

    response = client.put(
        "/api/v1/rate-developments/bills",
        params=params,
        json={"bill_progress": "Passed", "action_date": "05/02/2024"},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json()["data"]["action_date"] == "2024-05-02"

    assert client.delete("/api/v1/rate-developments/bills", params=params, headers=headers).status_code == 200
    assert client.delete("/api/v1/rate-developments/bills", params=params, headers=headers).status_code == 404


def test_update_state_plan_amendment_accepts_spreadsheet_columns(client, db, developments, auth_headers, admin_email):
    amendment = db.query(StatePlanAmendment).one()

    response = client.put(
        f"/api/v1/rate-developments/state-plan-amendments/{amendment.id}",
        json={"Transmittal Number": "24-0005", "Effective Date": 45352, "approval_date": "2024-04-01"},
        headers=auth_headers(admin_email),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["transmittal_number"] == "24-0005"
    assert data["effective_date"] == "2024-03-01"
    assert data["approval_date"] == "2024-04-01"


@pytest.mark.parametrize("payload", [{"effective_date": "someday"}, {"rate": "$5"}])
def test_update_state_plan_amendment_rejects(client, db, developments, auth_headers, admin_email, payload):
    amendment = db.query(StatePlanAmendment).one()

    response = client.put(
        f"/api/v1/rate-developments/state-plan-amendments/{amendment.id}",
        json=payload,
        headers=auth_headers(admin_email),
    )

    assert response.status_code == 400
    db.expire_all()
    assert db.query(StatePlanAmendment).one().effective_date is None


def test_recent_rate_changes_endpoint(client, db, subscriber_headers):
    today = utcnow().date()
    add_rate(db, today - timedelta(days=20), "$40.00")
    add_rate(db, today - timedelta(days=2), "$44.00")

    response = client.get("/api/v1/recent-rate-changes", params={"days": 30}, headers=subscriber_headers)

    assert response.status_code == 200
    change = response.json()["changes"][0]
    assert change["isChange"] is True
    assert change["percentageChange"] == pytest.approx(10.0)


def test_recent_rate_changes_rejects_bad_window(client, subscriber_headers):
    response = client.get("/api/v1/recent-rate-changes", params={"days": 0}, headers=subscriber_headers)

    assert response.status_code == 400


def test_modifiers_endpoint(client, db, subscriber_headers):
    db.add_all([
        CodeDefinition(hcpcs_code_cpt_code="99213", service_description="Office visit, modifier 25"),
        CodeDefinition(hcpcs_code_cpt_code="97110", service_description="Therapeutic exercise GP"),
    ])
    db.commit()

    response = client.get("/api/v1/modifiers", headers=subscriber_headers)

    assert response.status_code == 200
    assert [m["modifier_code"] for m in response.json()] == ["25", "GP"]


def test_initialize_email_preferences_endpoint(client, db, auth_headers):
    headers = auth_headers("new@example.com")

    first = client.post("/api/v1/users/initialize-email-preferences", json={"user_email": "new@example.com"},
                        headers=headers)
    second = client.post("/api/v1/users/initialize-email-preferences", headers=headers)

    assert first.json()["message"] == "Preferences initialized successfully"
    assert len(first.json()["preferences"]["states"]) == len(ALL_STATES)
    assert second.json() == {"success": True, "message": "Preferences already exist", "id": first.json()["id"]}
    assert db.query(EmailPreferences).count() == 1


def test_initialize_email_preferences_for_someone_else(client, auth_headers):
    response = client.post(
        "/api/v1/users/initialize-email-preferences",
        json={"user_email": "other@example.com"},
        headers=auth_headers("new@example.com"),
    )

    assert response.status_code == 403
