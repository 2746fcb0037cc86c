from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import validates

from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base

PROPOSAL_STATUSES = ("pending", "accepted", "rejected", "withdrawn")


class Proposal(Base):
    __tablename__ = "proposals"

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    price_min = Column(Integer, nullable=False)
    price_max = Column(Integer, nullable=False)
    message = Column(Text, nullable=False, default="")
    estimated_duration_days = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default="pending", index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    decided_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("lead_id", "provider_id", name="uq_proposals_lead_provider"),
    )

    @validates("status")
    def validate_status(self, key, value):
        if value not in PROPOSAL_STATUSES:
            raise ValueError(f"Invalid proposal status: {value!r}")
        return value

    @validates("price_min", "price_max")
    def validate_price(self, key, value):
        if value is None or value < 0:
            raise ValueError(f"{key} must be a non-negative amount")
        if key == "price_max" and self.price_min is not None and value < self.price_min:
            raise ValueError("price_max must not be lower than price_min")
        return value
