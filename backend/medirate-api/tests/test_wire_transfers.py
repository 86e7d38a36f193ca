from datetime import timedelta

from medirate_api.models import WireTransferSubscription, utcnow


def add_grant(db, email="wire@example.com", start_days=-10, end_days=355, **kwargs):
    now = utcnow()
    row = WireTransferSubscription(
        user_email=email,
        subscription_start_date=now + timedelta(days=start_days),
        subscription_end_date=now + timedelta(days=end_days) if end_days is not None else None,
        **kwargs,
    )
    db.add(row)
    db.commit()
    return row


def test_admin_creates_grant(client, db, auth_headers, admin_email):
    response = client.post(
        "/api/v1/wire-transfer-subscriptions",
        json={
            "userEmail": "Wire@Example.com",
            "subscriptionStartDate": "2024-01-01T00:00:00Z",
            "subscriptionEndDate": "2099-01-01T00:00:00+00:00",
            "notes": "PO 1234",
        },
        headers=auth_headers(admin_email),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["userEmail"] == "wire@example.com"
    assert data["status"] == "active"
    assert data["subscriptionStartDate"] == "2024-01-01T00:00:00"
    assert db.query(WireTransferSubscription).count() == 1


def test_create_rejects_end_before_start(client, auth_headers, admin_email):
    response = client.post(
        "/api/v1/wire-transfer-subscriptions",
        json={
            "userEmail": "wire@example.com",
            "subscriptionStartDate": "2024-06-01T00:00:00",
            "subscriptionEndDate": "2024-01-01T00:00:00",
        },
        headers=auth_headers(admin_email),
    )

    assert response.status_code == 400


def test_create_requires_admin(client, auth_headers):
    response = client.post(
        "/api/v1/wire-transfer-subscriptions",
        json={"userEmail": "wire@example.com", "subscriptionStartDate": "2024-01-01T00:00:00"},
        headers=auth_headers("wire@example.com"),
    )

    assert response.status_code == 403


def test_status_for_current_grant(client, db, auth_headers):
    add_grant(db)

    body = client.get("/api/v1/wire-transfer-subscriptions", headers=auth_headers("wire@example.com")).json()

    assert body["isWireTransferUser"] is True
    assert body["wireTransferData"]["userEmail"] == "wire@example.com"


def test_status_for_expired_grant(client, db, auth_headers):
    add_grant(db, start_days=-400, end_days=-35)

    body = client.get("/api/v1/wire-transfer-subscriptions", headers=auth_headers("wire@example.com")).json()

    assert body["isWireTransferUser"] is False
    assert body["reason"] == "expired"


def test_status_for_future_grant(client, db, auth_headers):
    add_grant(db, start_days=7, end_days=372)

    body = client.get("/api/v1/wire-transfer-subscriptions", headers=auth_headers("wire@example.com")).json()

    assert body["isWireTransferUser"] is False
    assert body["reason"] == "not_started"


def test_status_without_grant(client, auth_headers):
    body = client.get("/api/v1/wire-transfer-subscriptions", headers=auth_headers("x@example.com")).json()

    assert body == {"isWireTransferUser": False, "wireTransferData": None}


def test_admin_lists_grants(client, db, auth_headers, admin_email):
    add_grant(db, email="a@example.com")
    add_grant(db, email="b@example.com")

    response = client.get("/api/v1/wire-transfer-subscriptions/all", headers=auth_headers(admin_email))

    assert response.status_code == 200
    assert {row["userEmail"] for row in response.json()} == {"a@example.com", "b@example.com"}


def test_admin_cancels_grant(client, db, auth_headers, admin_email):
    grant = add_grant(db)

    response = client.patch(
        f"/api/v1/wire-transfer-subscriptions/{grant.id}",
        json={"status": "canceled"},
        headers=auth_headers(admin_email),
    )

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "canceled"
    access = client.get("/api/v1/access/me", headers=auth_headers("wire@example.com")).json()
    assert access["hasAccess"] is False


def test_update_unknown_grant(client, auth_headers, admin_email):
    response = client.patch(
        "/api/v1/wire-transfer-subscriptions/999", json={"notes": "x"}, headers=auth_headers(admin_email)
    )

    assert response.status_code == 404


def test_update_rejects_unknown_status(client, db, auth_headers, admin_email):
    grant = add_grant(db)

    response = client.patch(
        f"/api/v1/wire-transfer-subscriptions/{grant.id}",
        json={"status": "paused"},
        headers=auth_headers(admin_email),
    )

    assert response.status_code == 400
