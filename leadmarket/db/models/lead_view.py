from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint

from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base


class LeadView(Base):
    __tablename__ = "lead_views"

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, index=True)
    viewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    viewed_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("lead_id", "viewer_id", name="uq_lead_views_lead_viewer"),
    )
