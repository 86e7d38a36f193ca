from datetime import datetime, timedelta

from medirate_api.cron.expiration_checker import ExpirationChecker
from medirate_api.models import GrantStatus, TransferredSubscription, WireTransferSubscription

NOW = datetime(2024, 5, 15, 9, 0)


def add_wire(db, email, end):
    row = WireTransferSubscription(
        user_email=email,
        subscription_start_date=NOW - timedelta(days=300),
        subscription_end_date=end,
    )
    db.add(row)
    db.commit()
    return row


def test_warns_on_warning_days(db, email_sender):
    add_wire(db, "fourteen@example.com", NOW + timedelta(days=14, hours=2))
    add_wire(db, "ten@example.com", NOW + timedelta(days=10, hours=2))
    add_wire(db, "one@example.com", NOW + timedelta(days=1, hours=2))

    summary = ExpirationChecker(db, email_sender, now=NOW).check_expirations()

    assert summary["total_checked"] == 3
    assert summary["expiring_soon"] == 2
    assert summary["notifications_sent"] == 2
    assert {n.recipient_email for n in email_sender.sent} == {"fourteen@example.com", "one@example.com"}
    assert email_sender.sent[0].category == "expiration_warning"


def test_expires_past_due_grants(db, email_sender):
    row = add_wire(db, "late@example.com", NOW - timedelta(hours=1))

    summary = ExpirationChecker(db, email_sender, now=NOW).check_expirations()

    db.refresh(row)
    assert row.status == GrantStatus.EXPIRED.value
    assert summary["expired"] == 1
    assert email_sender.categories() == ["expiration_expired"]


def test_open_ended_and_inactive_grants_skipped(db, email_sender):
    add_wire(db, "forever@example.com", None)
    canceled = add_wire(db, "canceled@example.com", NOW - timedelta(days=1))
    canceled.status = GrantStatus.CANCELED.value
    db.commit()

    summary = ExpirationChecker(db, email_sender, now=NOW).check_expirations()

    assert summary["total_checked"] == 0
    assert email_sender.sent == []


def test_expiring_transferred_primary_takes_sub_users_along(db, email_sender):
    db.add(TransferredSubscription(
        primary_user_email="owner@example.com",
        subscription_start_date=NOW - timedelta(days=365),
        subscription_end_date=NOW - timedelta(minutes=5),
    ))
    db.add(TransferredSubscription(
        primary_user_email="owner@example.com",
        sub_user_email="team@example.com",
        subscription_end_date=NOW - timedelta(minutes=5),
    ))
    db.commit()

    summary = ExpirationChecker(db, email_sender, now=NOW).check_expirations()

    db.expire_all()
    statuses = {row.sub_user_email: row.status for row in db.query(TransferredSubscription).all()}
    assert statuses == {None: "expired", "team@example.com": "expired"}
    assert summary["total_checked"] == 1
    assert email_sender.sent[0].recipient_email == "owner@example.com"


def test_delivery_failures_are_counted(db, email_sender):
    add_wire(db, "seven@example.com", NOW + timedelta(days=7, hours=1))
    email_sender.fail = True

    summary = ExpirationChecker(db, email_sender, now=NOW).check_expirations()

    assert summary["errors"] == 1
    assert summary["notifications_sent"] == 0
