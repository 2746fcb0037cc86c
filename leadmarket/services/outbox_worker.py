"""
Outbox delivery worker.

Drains pending email rows written by the business transactions. Delivery
outcome is recorded on the outbox row only; business state is never touched.

Several drains can run at once (request background tasks and the cron
endpoint), so a row is claimed with a conditional UPDATE
(pending -> sending) before it is sent. Only the drain that wins the claim
delivers it. A row stuck in `sending` longer than
Settings.outbox_claim_timeout_minutes (crashed drain) goes back to pending.
"""
import logging
from datetime import timedelta
from typing import Dict

from sqlalchemy import update
from sqlalchemy.orm import Session

from leadmarket.core.config import Settings
from leadmarket.core.timeutils import utcnow
from leadmarket.db.models.outbox_event import OutboxEvent
from leadmarket.services.alert_service import raise_alert
from leadmarket.services.email_service import EmailClient

logger = logging.getLogger(__name__)


def release_stale_claims(db: Session, settings: Settings, now=None) -> int:
    """Return rows abandoned in `sending` to pending. Commits."""
    now = now or utcnow()
    cutoff = now - timedelta(minutes=settings.outbox_claim_timeout_minutes)
    result = db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.status == "sending", OutboxEvent.claimed_at < cutoff)
        .values(status="pending", claimed_at=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.warning(f"Released {result.rowcount} stale outbox claims")
    return result.rowcount


def claim_event(db: Session, event_id: int, now=None) -> bool:
    """
    Claim one pending row for delivery and count the attempt. Commits.

    Returns:
        False if another drain already claimed (or finished) the row
    """
    result = db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == event_id, OutboxEvent.status == "pending")
        .values(status="sending", claimed_at=now or utcnow(), attempts=OutboxEvent.attempts + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def deliver_pending(db: Session, client: EmailClient, settings: Settings, batch_size: int = None) -> Dict[str, int]:
    """
    Send up to batch_size pending outbox emails.

    Each row is claimed and finished in its own commit, so a crash mid-batch
    leaves at most the row in flight in `sending` until its claim goes stale.

    Returns:
        Counts: processed, sent, failed, retrying
    """
    batch_size = batch_size or settings.outbox_batch_size
    release_stale_claims(db, settings)

    event_ids = [
        row.id for row in
        db.query(OutboxEvent.id)
        .filter(OutboxEvent.status == "pending")
        .order_by(OutboxEvent.created_at, OutboxEvent.id)
        .limit(batch_size)
        .all()
    ]

    summary = {"processed": 0, "sent": 0, "failed": 0, "retrying": 0}
    for event_id in event_ids:
        if not claim_event(db, event_id):
            logger.info(f"Outbox #{event_id} claimed by another drain, skipping")
            continue

        event = db.get(OutboxEvent, event_id)
        summary["processed"] += 1
        result = client.send_email(event.recipient, event.subject, event.html_body)

        if result.success:
            event.status = "sent"
            event.sent_at = utcnow()
            event.last_error = None
            summary["sent"] += 1
        elif result.permanent or event.attempts >= settings.outbox_max_attempts:
            event.status = "failed"
            event.last_error = result.error
            summary["failed"] += 1
            raise_alert(
                db,
                type="email_undeliverable",
                title="E-Mail konnte nicht zugestellt werden",
                message=f"Outbox #{event.id} an {event.recipient}: {result.error}",
                metadata={"outbox_id": event.id, "attempts": event.attempts},
            )
        else:
            event.status = "pending"
            event.last_error = result.error
            summary["retrying"] += 1
        event.claimed_at = None

        db.commit()

    if summary["processed"]:
        logger.info(f"Outbox drained: {summary}")
    return summary
