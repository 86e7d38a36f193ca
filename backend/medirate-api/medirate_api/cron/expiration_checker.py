"""
Expiration checker cron job - warns about and expires manual subscriptions

Covers wire-transfer subscriptions and transferred subscriptions; Stripe
subscriptions expire on Stripe's side.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..models import GrantStatus, TransferredSubscription, WireTransferSubscription, utcnow
from ..notifications import messages
from ..notifications.sender import EmailDeliveryError, EmailSender

logger = logging.getLogger(__name__)


class ExpirationChecker:
    """Checks for expiring manual subscriptions and sends notifications"""

    def __init__(self, db: Session, email_sender: EmailSender, now: Optional[datetime] = None):
        self.db = db
        self.email_sender = email_sender
        self.now = now or utcnow()
        self.warning_days = [14, 7, 3, 1]  # Days before expiration to send warnings

    def _grants(self):
        """Active grants with an end date, as (kind, owner_email, row)"""
        wire_transfers = (
            self.db.query(WireTransferSubscription)
            .filter(
                WireTransferSubscription.status == GrantStatus.ACTIVE.value,
                WireTransferSubscription.subscription_end_date.isnot(None),
            )
            .all()
        )
        for row in wire_transfers:
            yield "wire transfer", row.user_email, row

        # Sub-user rows follow their primary, so only primaries are checked
        transferred = (
            self.db.query(TransferredSubscription)
            .filter(
                TransferredSubscription.status == GrantStatus.ACTIVE.value,
                TransferredSubscription.sub_user_email.is_(None),
                TransferredSubscription.subscription_end_date.isnot(None),
            )
            .all()
        )
        for row in transferred:
            yield "transferred", row.primary_user_email, row

    def check_expirations(self) -> dict:
        """
        Warn owners of grants expiring soon and expire the ones past their end date.

        Returns a summary of what was done.
        """
        summary = {
            "total_checked": 0,
            "expiring_soon": 0,
            "expired": 0,
            "notifications_sent": 0,
            "errors": 0,
        }

        for kind, email, row in list(self._grants()):
            summary["total_checked"] += 1
            end_date = row.subscription_end_date

            if end_date <= self.now:
                try:
                    self._expire(kind, email, row)
                    summary["expired"] += 1
                except Exception as e:
                    self.db.rollback()
                    logger.error(f"Failed to expire {kind} subscription {row.id} for {email}: {e}")
                    summary["errors"] += 1
                    continue
                if self._notify(messages.subscription_expired(email, kind, end_date)):
                    summary["notifications_sent"] += 1
                continue

            days_until_expiration = (end_date - self.now).days
            if days_until_expiration in self.warning_days:
                summary["expiring_soon"] += 1
                notification = messages.subscription_expiring(email, kind, end_date, days_until_expiration)
                if self._notify(notification):
                    summary["notifications_sent"] += 1
                else:
                    summary["errors"] += 1

        logger.info(
            f"Expiration check complete: {summary['total_checked']} checked, "
            f"{summary['expiring_soon']} expiring soon, "
            f"{summary['expired']} expired, "
            f"{summary['notifications_sent']} notifications sent, "
            f"{summary['errors']} errors"
        )
        return summary

    def _expire(self, kind: str, email: str, row) -> None:
        """Mark a grant expired, together with its sub-user rows"""
        logger.info(f"Expiring {kind} subscription {row.id} for {email} (ended {row.subscription_end_date})")
        row.status = GrantStatus.EXPIRED.value

        if isinstance(row, TransferredSubscription):
            (
                self.db.query(TransferredSubscription)
                .filter(
                    TransferredSubscription.primary_user_email == row.primary_user_email,
                    TransferredSubscription.sub_user_email.isnot(None),
                    TransferredSubscription.status == GrantStatus.ACTIVE.value,
                )
                .update({"status": GrantStatus.EXPIRED.value}, synchronize_session=False)
            )

        self.db.commit()

    def _notify(self, notification) -> bool:
        try:
            self.email_sender.send_transactional(notification)
            return True
        except EmailDeliveryError as e:
            logger.error(f"Failed to send {notification.category} email to {notification.recipient_email}: {e}")
            return False


def run_expiration_check():
    """Entry point for running the expiration checker as a cron job"""
    from ..config.loader import get_config
    from ..database import SessionLocal

    config = get_config()
    db = SessionLocal()
    try:
        checker = ExpirationChecker(db, EmailSender(config.brevo, config.notification))
        summary = checker.check_expirations()

        logger.info(f"Expiration check summary: {summary}")
        return summary
    finally:
        db.close()


if __name__ == "__main__":
    # Can be run directly: python -m medirate_api.cron.expiration_checker
    logging.basicConfig(level=logging.INFO)
    run_expiration_check()
