"""
Notification dispatch.

Everything here writes into the caller's session: in-app notifications,
outbox emails and dedupe receipts commit (or roll back) together with the
business change that produced them.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadmarket.db.models.notification import Notification
from leadmarket.db.models.notification_receipt import NotificationReceipt
from leadmarket.db.models.outbox_event import OutboxEvent

logger = logging.getLogger(__name__)


def notify_in_app(
    db: Session,
    user_id: int,
    type: str,
    title: str,
    message: str,
    related_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        related_id=related_id,
        meta=metadata,
    )
    db.add(notification)
    return notification


def queue_email(db: Session, to: Optional[str], subject: str, html_body: str) -> Optional[OutboxEvent]:
    """Add an email to the outbox. Returns None when there is no recipient."""
    if not to:
        logger.warning(f"Email not queued, no recipient: subject={subject!r}")
        return None
    event = OutboxEvent(kind="email", recipient=to, subject=subject, html_body=html_body)
    db.add(event)
    return event


def lead_key(lead_id: int) -> str:
    return f"lead:{lead_id}"


def subscription_key(subscription_id: int, period_end) -> str:
    return f"subscription:{subscription_id}:{period_end:%Y-%m-%d}"


def pending_plan_key(subscription_id: int, pending_plan_at) -> str:
    return f"pending_plan:{subscription_id}:{pending_plan_at:%Y%m%d%H%M%S}"


def claim_receipt(db: Session, subject_key: str, recipient_id: int, kind: str) -> bool:
    """
    Record that a notification is about to be sent.

    Returns False if the same (subject, recipient, kind) was already claimed,
    in which case the caller must skip sending.
    """
    exists = db.query(NotificationReceipt.id).filter(
        NotificationReceipt.subject_key == subject_key,
        NotificationReceipt.recipient_id == recipient_id,
        NotificationReceipt.kind == kind,
    ).first()
    if exists:
        return False

    try:
        with db.begin_nested():
            db.add(NotificationReceipt(subject_key=subject_key, recipient_id=recipient_id, kind=kind))
    except IntegrityError:
        # Claimed by a concurrent run between our check and insert
        logger.info(f"Receipt already claimed: {subject_key} recipient={recipient_id} kind={kind}")
        return False
    return True
