from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import validates

from leadmarket.core.taxonomy import is_canton_code, is_postal_code, normalize_category
from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base

LEAD_STATUSES = ("draft", "active", "expired", "completed", "cancelled")
URGENCY_LEVELS = ("today", "this_week", "this_month", "planning", "normal")


class Lead(Base):
    """
    A property owner's service request.

    Status flow: draft -> active -> {expired, completed, cancelled}.
    Setting accepted_proposal_id moves the lead to completed in the same
    statement (see proposal_service.accept_proposal).
    """
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False, index=True)
    canton = Column(String(2), nullable=False)
    postal_code = Column(String(4), nullable=False)
    city = Column(String, nullable=True)
    budget_min = Column(Integer, nullable=True)
    budget_max = Column(Integer, nullable=True)
    urgency = Column(String, nullable=False, default="normal")
    status = Column(String, nullable=False, default="draft", index=True)
    proposal_deadline = Column(DateTime, nullable=True, index=True)
    accepted_proposal_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("status != 'active' OR proposal_deadline IS NOT NULL", name="ck_leads_active_deadline"),
        CheckConstraint("accepted_proposal_id IS NULL OR status = 'completed'", name="ck_leads_accepted_completed"),
        Index("idx_leads_status_deadline", "status", "proposal_deadline"),
    )

    @validates("category")
    def validate_category(self, key, value):
        value = normalize_category(value)
        if not value:
            raise ValueError("Lead category is required")
        return value

    @validates("canton")
    def validate_canton(self, key, value):
        if not is_canton_code(value):
            raise ValueError(f"Unknown canton code: {value!r}")
        return value.strip().upper()

    @validates("postal_code")
    def validate_postal_code(self, key, value):
        value = str(value or "").strip()
        if not is_postal_code(value):
            raise ValueError(f"Invalid Swiss postal code: {value!r}")
        return value

    @validates("status")
    def validate_status(self, key, value):
        if value not in LEAD_STATUSES:
            raise ValueError(f"Invalid lead status: {value!r}")
        return value

    @validates("urgency")
    def validate_urgency(self, key, value):
        if value not in URGENCY_LEVELS:
            raise ValueError(f"Invalid urgency: {value!r}")
        return value

    @validates("budget_min", "budget_max")
    def validate_budget(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"{key} must not be negative")
        return value
