from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base


class NotificationReceipt(Base):
    """
    Dedupe ledger for outbound notifications.

    One row per (subject, recipient, kind); inserting a duplicate fails on the
    unique constraint, which is how re-run sweeps detect work already done.
    """
    __tablename__ = "notification_receipts"

    id = Column(Integer, primary_key=True, index=True)
    subject_key = Column(String, nullable=False)  # e.g. "lead:42"
    recipient_id = Column(Integer, nullable=False)
    kind = Column(String, nullable=False)  # "new_lead", "deadline_owner", ...
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("subject_key", "recipient_id", "kind", name="uq_receipts_subject_recipient_kind"),
    )
