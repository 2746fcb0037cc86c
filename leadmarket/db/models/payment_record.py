from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import validates

from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base

PAYMENT_STATUSES = ("paid", "failed")


class PaymentRecord(Base):
    """One row per gateway transaction; transaction_id is the idempotency key."""
    __tablename__ = "payment_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    transaction_id = Column(String, unique=True, nullable=False)
    plan_type = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)  # minor units (Rappen)
    currency = Column(String(3), nullable=False, default="CHF")
    status = Column(String, nullable=False)
    provider = Column(String, nullable=False, default="payrexx")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @validates("status")
    def validate_status(self, key, value):
        if value not in PAYMENT_STATUSES:
            raise ValueError(f"Invalid payment status: {value!r}")
        return value

    @validates("currency")
    def validate_currency(self, key, value):
        return (value or "CHF").upper()
