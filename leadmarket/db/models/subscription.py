from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import validates

from leadmarket.core.plans import FREE_TIER_PROPOSALS_LIMIT, PLAN_CONFIGS, PLAN_TYPES, UNLIMITED
from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    plan_type = Column(String, nullable=False, default="free")  # free | monthly | 6_month | annual
    status = Column(String, nullable=False, default="active")
    proposals_limit = Column(Integer, nullable=False, default=FREE_TIER_PROPOSALS_LIMIT)  # -1 = unlimited
    proposals_used_this_period = Column(Integer, nullable=False, default=0)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    pending_plan = Column(String, nullable=True)  # selected but not yet paid
    pending_plan_at = Column(DateTime, nullable=True)  # when the pending plan was chosen
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @validates("plan_type")
    def validate_plan_type(self, key, value):
        if value not in PLAN_TYPES:
            raise ValueError(f"Unknown plan type: {value!r}")
        return value

    @validates("pending_plan")
    def validate_pending_plan(self, key, value):
        if value is not None and value not in PLAN_CONFIGS:
            raise ValueError(f"Pending plan must be a paid plan: {value!r}")
        return value

    @validates("proposals_limit")
    def validate_proposals_limit(self, key, value):
        if value < UNLIMITED:
            raise ValueError("proposals_limit must be -1 (unlimited) or non-negative")
        return value

    def has_active_paid_plan(self, now=None) -> bool:
        """Active, non-free and not past its period end."""
        now = now or utcnow()
        if self.plan_type == "free" or self.status != "active":
            return False
        return self.current_period_end is None or self.current_period_end > now
