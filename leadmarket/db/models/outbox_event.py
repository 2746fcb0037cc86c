from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import validates

from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base

OUTBOX_STATUSES = ("pending", "sending", "sent", "failed")


class OutboxEvent(Base):
    """
    Email waiting for delivery.

    Rows are written in the same transaction as the state change that caused
    them and drained by outbox_worker.deliver_pending().
    """
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, nullable=False, default="email")
    recipient = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    html_body = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    claimed_at = Column(DateTime, nullable=True)  # set while a drain is delivering the row
    sent_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_outbox_status_created", "status", "created_at"),
    )

    @validates("status")
    def validate_status(self, key, value):
        if value not in OUTBOX_STATUSES:
            raise ValueError(f"Invalid outbox status: {value!r}")
        return value
